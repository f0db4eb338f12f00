"""
Payment API Endpoints.

Opening a gateway order, confirming it from the signed checkout callback,
and marking it failed. Renter and owner are notified after a payment
actually moves to PAID.
"""

from fastapi import APIRouter, Depends, HTTPException, status, Path
from typing import List

from backend.app.db.ledger_store import LedgerStore, get_ledger_store
from backend.app.domain.payments.gateway import PaymentGateway, get_payment_gateway
from backend.app.domain.payments.payment_service import PaymentService
from backend.app.core.dependencies import get_current_user
from backend.app.core.guards import is_admin
from backend.app.schemas.payment import (
    PaymentCreate, PaymentConfirm, PaymentFail, PaymentResponse,
    PaymentIntentResponse, PaymentConfirmResponse, PaymentEnvelope,
)
from backend.app.services.audit import record_event, AuditAction
from backend.app.services.notification_service import NotificationDispatcher, get_notification_dispatcher

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", response_model=PaymentIntentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    payload: PaymentCreate,
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """
    Open a payment for a booking.

    Creates the gateway order first; nothing is stored if the gateway
    fails (502).
    """
    user_id = payload.user_id or current_user["user_id"]
    if user_id != current_user["user_id"] and not is_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only open payments for yourself"
        )

    payment, order = await PaymentService.create_payment_intent(
        store,
        gateway,
        booking_id=payload.booking_id,
        user_id=user_id,
        amount=payload.amount,
        insurance_fee=payload.insurance_fee,
        platform_fee=payload.platform_fee,
    )

    await record_event(
        db=store.session,
        action=AuditAction.PAYMENT_INITIATED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        entity_type="payment",
        entity_id=payment.id,
        metadata={"booking_id": payment.booking_id, "amount": payment.amount, "order_id": payment.gateway_order_id}
    )

    return {"payment": payment, "gateway_order": order}


@router.post("/confirm", response_model=PaymentConfirmResponse)
async def confirm_payment(
    payload: PaymentConfirm,
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """
    Confirm a payment from the gateway's signed callback.

    Replaying the same callback returns success without side effects.
    """
    payment, transitioned = await PaymentService.confirm_payment(
        store,
        gateway,
        payment_id=payload.payment_id,
        gateway_payment_id=payload.gateway_payment_id,
        gateway_order_id=payload.gateway_order_id,
        signature=payload.signature,
    )

    if transitioned:
        await PaymentService.notify_payment_confirmed(store, dispatcher, payment)
        await record_event(
            db=store.session,
            action=AuditAction.PAYMENT_CONFIRMED,
            actor_id=current_user["user_id"],
            actor_username=current_user.get("sub"),
            entity_type="payment",
            entity_id=payment.id,
            metadata={"gateway_payment_id": payment.gateway_payment_id}
        )

    return {"success": True, "payment": payment}


@router.post("/{payment_id}/fail", response_model=PaymentEnvelope)
async def fail_payment(
    payload: PaymentFail,
    payment_id: int = Path(..., description="Payment ID"),
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Mark a PENDING payment as FAILED (payer or admin)."""
    payment = await PaymentService.get_payment(store, payment_id)
    if payment.user_id != current_user["user_id"] and not is_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. This is not your payment."
        )

    payment, changed = await PaymentService.fail_payment(store, payment_id, payload.reason)

    if changed:
        await record_event(
            db=store.session,
            action=AuditAction.PAYMENT_FAILED,
            actor_id=current_user["user_id"],
            actor_username=current_user.get("sub"),
            entity_type="payment",
            entity_id=payment.id,
            metadata={"reason": payload.reason}
        )

    return {"payment": payment}


@router.get("", response_model=List[PaymentResponse])
async def list_payments(
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Payments made by the caller; every payment for admins."""
    return await PaymentService.list_payments(
        store, current_user["user_id"], include_all=is_admin(current_user)
    )
