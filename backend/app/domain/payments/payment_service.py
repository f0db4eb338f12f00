"""
Payment Service (Domain Logic).

Payment reconciliation engine:

1. create_payment_intent: gateway order first, then a PENDING row.
   A gateway failure leaves nothing behind.
2. confirm_payment: verify the callback signature, then move the row
   PENDING -> PAID exactly once. Replays of the same callback are a
   no-op success; a callback carrying a different gateway payment id
   for an already-paid row is rejected.
3. After commit, renter and item owner are told by email and SMS.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence, Tuple

from sqlalchemy import select, desc

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    ValidationError,
    NotFoundError,
    InvalidStateError,
    SignatureMismatchError,
    AlreadyConfirmedError,
    GatewayError,
)
from backend.app.db.ledger_store import LedgerStore
from backend.app.domain.insurance.pool_ledger import InsurancePoolLedger
from backend.app.domain.payments.gateway import PaymentGateway
from backend.app.models.base import utcnow
from backend.app.models.booking import Booking
from backend.app.models.item import Item
from backend.app.models.payment import Payment
from backend.app.models.rental_enums import PaymentStatus, TERMINAL_BOOKING_STATUSES
from backend.app.models.user import User
from backend.app.services.notification_service import NotificationDispatcher, notifications_for

logger = logging.getLogger("rentivo.payments")


class PaymentService:

    @staticmethod
    async def create_payment_intent(
        store: LedgerStore,
        gateway: PaymentGateway,
        booking_id: Optional[int],
        user_id: Optional[int],
        amount: Optional[int],
        insurance_fee: int = 0,
        platform_fee: int = 0,
    ) -> Tuple[Payment, Dict[str, Any]]:
        """
        Open a gateway order for a booking and record a PENDING payment.

        Returns:
            (payment, raw gateway order)

        Raises:
            ValidationError: missing ids, amount out of range or negative fee
            NotFoundError: booking or paying user does not exist
            GatewayError: the gateway failed or timed out
        """
        if booking_id is None or user_id is None:
            raise ValidationError("booking_id and user_id are required")
        if amount is None or amount <= 0:
            raise ValidationError("amount must be greater than zero", details={"amount": amount})
        if max(amount, insurance_fee, platform_fee) > settings.max_payment_amount:
            raise ValidationError(
                f"amounts cannot exceed {settings.max_payment_amount}",
                details={"max_payment_amount": settings.max_payment_amount},
            )
        if insurance_fee < 0 or platform_fee < 0:
            raise ValidationError("fees cannot be negative")

        async with store.transaction():
            booking = await store.find_unique(Booking, booking_id)
            if not booking:
                raise NotFoundError("Booking", booking_id)
            if not await store.find_unique(User, user_id):
                raise NotFoundError("User", user_id)

        currency = settings.payment_currency
        amount_minor = amount * settings.currency_minor_unit_factor

        try:
            order = await asyncio.wait_for(
                gateway.create_order(amount_minor, currency, receipt=f"booking_{booking_id}"),
                timeout=settings.gateway_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise GatewayError("Payment gateway timed out") from exc

        async with store.transaction():
            payment = await store.create(Payment(
                booking_id=booking_id,
                user_id=user_id,
                amount=amount,
                insurance_fee=insurance_fee,
                platform_fee=platform_fee,
                currency=currency,
                gateway_order_id=order["id"],
                status=PaymentStatus.PENDING,
            ))

        logger.info("Payment %s opened for booking %s (order %s)", payment.id, booking_id, order["id"])
        return payment, order

    @staticmethod
    def _check_settled(payment: Payment, gateway_payment_id: str) -> bool:
        """
        Decide what a confirmation means for a payment that may already
        be settled.

        Returns:
            True if this is a replay of the confirmation that settled it,
            False if the payment is still PENDING
        """
        if payment.status == PaymentStatus.PENDING:
            return False
        if payment.status == PaymentStatus.PAID:
            if payment.gateway_payment_id == gateway_payment_id:
                return True
            raise AlreadyConfirmedError(payment.id)
        raise InvalidStateError(
            f"Payment {payment.id} is {payment.status.value} and cannot be confirmed",
            details={"payment_id": payment.id, "status": payment.status.value},
        )

    @staticmethod
    async def confirm_payment(
        store: LedgerStore,
        gateway: PaymentGateway,
        payment_id: Optional[int],
        gateway_payment_id: Optional[str],
        gateway_order_id: Optional[str],
        signature: Optional[str],
    ) -> Tuple[Payment, bool]:
        """
        Settle a payment from a signed gateway callback.

        Returns:
            (payment, transitioned) where transitioned is False for a replay

        Raises:
            ValidationError: missing fields, or the order belongs to another payment
            SignatureMismatchError: signature does not verify (nothing is written)
            NotFoundError: payment does not exist
            AlreadyConfirmedError: already PAID with a different gateway payment id
            InvalidStateError: payment FAILED, or booking already terminal
        """
        if not payment_id or not gateway_payment_id or not gateway_order_id or not signature:
            raise ValidationError(
                "payment_id, gateway_payment_id, gateway_order_id and signature are required"
            )

        if not gateway.verify_callback(gateway_order_id, gateway_payment_id, signature):
            logger.warning("Signature mismatch for payment %s (order %s)", payment_id, gateway_order_id)
            raise SignatureMismatchError()

        transitioned = False
        async with store.transaction():
            payment = await store.find_unique(Payment, payment_id)
            if not payment:
                raise NotFoundError("Payment", payment_id)
            if payment.gateway_order_id != gateway_order_id:
                raise ValidationError(
                    "gateway_order_id does not belong to this payment",
                    details={"payment_id": payment_id},
                )

            if not PaymentService._check_settled(payment, gateway_payment_id):
                booking = await store.find_unique(Booking, payment.booking_id)
                if booking.status in TERMINAL_BOOKING_STATUSES:
                    raise InvalidStateError(
                        f"Booking {booking.id} is {booking.status.value}; payment cannot be confirmed",
                        details={"booking_id": booking.id, "status": booking.status.value},
                    )

                won = await store.compare_and_set(
                    Payment,
                    payment.id,
                    expected={"status": PaymentStatus.PENDING},
                    values={
                        "status": PaymentStatus.PAID,
                        "gateway_payment_id": gateway_payment_id,
                        "paid_at": utcnow(),
                    },
                )
                payment = await store.find_unique(Payment, payment.id)
                if won:
                    transitioned = True
                    if payment.insurance_fee:
                        await InsurancePoolLedger.credit(store, payment.insurance_fee)
                else:
                    # A concurrent delivery settled it first
                    PaymentService._check_settled(payment, gateway_payment_id)

        if transitioned:
            logger.info("Payment %s confirmed (gateway payment %s)", payment.id, gateway_payment_id)
        else:
            logger.info("Payment %s confirmation replayed; no change", payment.id)
        return payment, transitioned

    @staticmethod
    async def fail_payment(store: LedgerStore, payment_id: int, reason: Optional[str]) -> Tuple[Payment, bool]:
        """
        PENDING -> FAILED. Repeating it is a no-op.

        Raises:
            NotFoundError: payment does not exist
            AlreadyConfirmedError: the payment is already PAID
        """
        async with store.transaction():
            payment = await store.find_unique(Payment, payment_id)
            if not payment:
                raise NotFoundError("Payment", payment_id)
            if payment.status == PaymentStatus.FAILED:
                return payment, False
            if payment.status == PaymentStatus.PAID:
                raise AlreadyConfirmedError(payment.id)

            won = await store.compare_and_set(
                Payment,
                payment.id,
                expected={"status": PaymentStatus.PENDING},
                values={"status": PaymentStatus.FAILED, "failure_reason": reason},
            )
            payment = await store.find_unique(Payment, payment.id)
            if not won and payment.status == PaymentStatus.PAID:
                raise AlreadyConfirmedError(payment.id)

        logger.info("Payment %s marked FAILED: %s", payment.id, reason)
        return payment, won

    @staticmethod
    async def get_payment(store: LedgerStore, payment_id: int) -> Payment:
        payment = await store.find_unique(Payment, payment_id)
        if not payment:
            raise NotFoundError("Payment", payment_id)
        return payment

    @staticmethod
    async def list_payments(store: LedgerStore, user_id: int, include_all: bool = False) -> Sequence[Payment]:
        query = select(Payment)
        if not include_all:
            query = query.where(Payment.user_id == user_id)
        query = query.order_by(desc(Payment.created_at), desc(Payment.id))
        return await store.find_many(query)

    @staticmethod
    async def notify_payment_confirmed(
        store: LedgerStore,
        dispatcher: NotificationDispatcher,
        payment: Payment,
    ) -> None:
        """Queue payment-received messages for renter and item owner."""
        booking = await store.find_unique(Booking, payment.booking_id)
        item = await store.find_unique(Item, booking.item_id)
        renter = await store.find_unique(User, booking.renter_id)
        owner = await store.find_unique(User, item.owner_id) if item else None
        title = item.title if item else f"booking {booking.id}"
        event_key = f"payment-paid:{payment.id}"

        messages = notifications_for(
            renter, event_key,
            "Payment Received",
            f"<p>Your payment of {payment.currency} {payment.amount} for {title} has been received.</p>",
            f"Payment of {payment.currency} {payment.amount} received for booking {booking.id}",
        )
        messages += notifications_for(
            owner, event_key,
            "Payment Completed",
            f"<p>You received a payment of {payment.currency} {payment.amount} for your item {title}.</p>",
            f"Payment of {payment.currency} {payment.amount} completed for your item {title}",
        )
        dispatcher.dispatch(messages)
