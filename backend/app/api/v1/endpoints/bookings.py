"""
Booking API Endpoints.

Booking lifecycle (create, handover, return, extend, cancel) and item
availability windows.
"""

from fastapi import APIRouter, Depends, HTTPException, status, Path
from typing import List

from backend.app.db.ledger_store import LedgerStore, get_ledger_store
from backend.app.domain.bookings.booking_service import BookingService
from backend.app.models.enums import UserRole
from backend.app.models.item import Item
from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import NotFoundError
from backend.app.core.guards import require_role, is_admin, ownership_guard
from backend.app.schemas.booking import (
    BookingCreate, BookingResponse, BookingEnvelope, HandoverRecord, ReturnRecord,
    BookingExtend, AvailabilityCreate, AvailabilityResponse, AvailabilityEnvelope,
    AuditEntryResponse,
)
from backend.app.services.audit import record_event, get_entity_history, AuditAction

router = APIRouter(prefix="/bookings", tags=["Bookings"])
items_router = APIRouter(prefix="/items", tags=["Availability"])


@router.post("", response_model=BookingEnvelope, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """
    Create a PENDING booking.

    Non-admins can only book for themselves.
    """
    renter_id = payload.renter_id or current_user["user_id"]
    if renter_id != current_user["user_id"] and not is_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only create bookings for yourself"
        )

    booking = await BookingService.create_booking(
        store, payload.item_id, renter_id, payload.start_date, payload.end_date
    )

    await record_event(
        db=store.session,
        action=AuditAction.BOOKING_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        entity_type="booking",
        entity_id=booking.id,
        metadata={"item_id": booking.item_id, "renter_id": booking.renter_id}
    )

    return {"booking": booking}


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """List bookings the caller rented or owns the item for (all for admins)."""
    return await BookingService.list_bookings(
        store, current_user["user_id"], include_all=is_admin(current_user)
    )


@router.get("/{booking_id}", response_model=BookingEnvelope)
async def get_booking(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    booking, item = await BookingService.get_booking_with_item(store, booking_id)
    ownership_guard.enforce_party(booking, item, current_user)
    return {"booking": booking}


@router.get("/{booking_id}/history", response_model=List[AuditEntryResponse])
async def get_booking_history(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Audit trail of a booking, most recent first."""
    booking, item = await BookingService.get_booking_with_item(store, booking_id)
    ownership_guard.enforce_party(booking, item, current_user)
    return await get_entity_history(store.session, "booking", booking_id)


@router.patch("/{booking_id}/handover", response_model=BookingEnvelope)
async def record_handover(
    payload: HandoverRecord,
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_role([UserRole.OWNER])),
    store: LedgerStore = Depends(get_ledger_store)
):
    """
    Record handover (Item owner only).

    Validates:
    - Caller owns the booked item
    - Booking is PENDING

    Actions:
    - Change status to ONGOING
    - Store handover photo and notes
    """
    booking, item = await BookingService.get_booking_with_item(store, booking_id)
    ownership_guard.enforce_item_owner(item, current_user, allow_admin=False)

    booking = await BookingService.record_handover(
        store, booking_id, current_user["user_id"], payload.photo, payload.notes
    )

    await record_event(
        db=store.session,
        action=AuditAction.BOOKING_HANDED_OVER,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        entity_type="booking",
        entity_id=booking.id,
        metadata={"photo": payload.photo}
    )

    return {"booking": booking}


@router.patch("/{booking_id}/return", response_model=BookingEnvelope)
async def record_return(
    payload: ReturnRecord,
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Record return of an ONGOING booking, completing it."""
    booking, item = await BookingService.get_booking_with_item(store, booking_id)
    ownership_guard.enforce_party(booking, item, current_user)

    booking = await BookingService.record_return(
        store, booking_id, current_user["user_id"], payload.photo, payload.notes
    )

    await record_event(
        db=store.session,
        action=AuditAction.BOOKING_RETURNED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        entity_type="booking",
        entity_id=booking.id,
        metadata={"photo": payload.photo}
    )

    return {"booking": booking}


@router.patch("/{booking_id}/extend", response_model=BookingEnvelope)
async def extend_booking(
    payload: BookingExtend,
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Move the booking's end date later. Status is unchanged."""
    booking, item = await BookingService.get_booking_with_item(store, booking_id)
    ownership_guard.enforce_party(booking, item, current_user)

    booking = await BookingService.extend_booking(
        store, booking_id, current_user["user_id"], payload.new_end_date
    )

    await record_event(
        db=store.session,
        action=AuditAction.BOOKING_EXTENDED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        entity_type="booking",
        entity_id=booking.id,
        metadata={"extended_until": booking.extended_until.isoformat()}
    )

    return {"booking": booking}


@router.patch("/{booking_id}/cancel", response_model=BookingEnvelope)
async def cancel_booking(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Cancel a booking that has not been handed over yet."""
    booking, item = await BookingService.get_booking_with_item(store, booking_id)
    ownership_guard.enforce_party(booking, item, current_user)

    booking = await BookingService.cancel_booking(store, booking_id, current_user["user_id"])

    await record_event(
        db=store.session,
        action=AuditAction.BOOKING_CANCELLED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        entity_type="booking",
        entity_id=booking.id,
    )

    return {"booking": booking}


@items_router.post(
    "/{item_id}/availability",
    response_model=AvailabilityEnvelope,
    status_code=status.HTTP_201_CREATED
)
async def add_availability(
    payload: AvailabilityCreate,
    item_id: int = Path(..., description="Item ID"),
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Append an availability window for an item (item owner only)."""
    item = await store.find_unique(Item, item_id)
    if not item:
        raise NotFoundError("Item", item_id)
    ownership_guard.enforce_item_owner(item, current_user)

    window = await BookingService.add_availability_window(
        store, item_id, payload.start_date, payload.end_date
    )

    await record_event(
        db=store.session,
        action=AuditAction.AVAILABILITY_ADDED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        entity_type="item",
        entity_id=item_id,
        metadata={"start_date": window.start_date.isoformat(), "end_date": window.end_date.isoformat()}
    )

    return {"availability": window}


@items_router.get("/{item_id}/availability", response_model=List[AvailabilityResponse])
async def list_availability(
    item_id: int = Path(..., description="Item ID"),
    store: LedgerStore = Depends(get_ledger_store)
):
    """List availability windows for an item, earliest first."""
    return await BookingService.list_availability_windows(store, item_id)
