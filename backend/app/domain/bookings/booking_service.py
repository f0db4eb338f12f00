"""
Booking Service (Domain Logic).

Owns the booking lifecycle:

    PENDING --handover--> ONGOING --return--> COMPLETED
    PENDING --cancel----> CANCELLED

Only date and status rules live here. Who may call what is decided by
the route layer before these methods run.
"""

import logging
from datetime import date
from typing import Optional, Sequence, Tuple

from sqlalchemy import select, desc, or_

from backend.app.core.exceptions import ValidationError, NotFoundError, InvalidTransitionError
from backend.app.db.ledger_store import LedgerStore
from backend.app.models.availability import AvailabilityWindow
from backend.app.models.base import utcnow
from backend.app.models.booking import Booking
from backend.app.models.item import Item
from backend.app.models.rental_enums import BookingStatus
from backend.app.models.user import User

logger = logging.getLogger("rentivo.bookings")


class BookingService:

    @staticmethod
    async def create_booking(
        store: LedgerStore,
        item_id: Optional[int],
        renter_id: Optional[int],
        start_date: Optional[date],
        end_date: Optional[date],
    ) -> Booking:
        """
        Create a PENDING booking.

        Raises:
            ValidationError: a field is missing or start_date >= end_date
            NotFoundError: item or renter does not exist
        """
        if item_id is None or renter_id is None or start_date is None or end_date is None:
            raise ValidationError("item_id, renter_id, start_date and end_date are required")
        if start_date >= end_date:
            raise ValidationError(
                "start_date must be before end_date",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )

        async with store.transaction():
            item = await store.find_unique(Item, item_id)
            if not item or not item.is_active:
                raise NotFoundError("Item", item_id)
            renter = await store.find_unique(User, renter_id)
            if not renter:
                raise NotFoundError("User", renter_id)

            booking = await store.create(Booking(
                item_id=item_id,
                renter_id=renter_id,
                start_date=start_date,
                end_date=end_date,
                status=BookingStatus.PENDING,
            ))

        logger.info("Booking %s created for item %s by renter %s", booking.id, item_id, renter_id)
        return booking

    @staticmethod
    async def get_booking(store: LedgerStore, booking_id: int) -> Booking:
        booking = await store.find_unique(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    @staticmethod
    async def get_booking_with_item(store: LedgerStore, booking_id: int) -> Tuple[Booking, Item]:
        booking = await BookingService.get_booking(store, booking_id)
        item = await store.find_unique(Item, booking.item_id)
        if not item:
            raise NotFoundError("Item", booking.item_id)
        return booking, item

    @staticmethod
    async def list_bookings(store: LedgerStore, user_id: int, include_all: bool = False) -> Sequence[Booking]:
        """Bookings the user rented or whose item they own; everything for admins."""
        query = select(Booking)
        if not include_all:
            query = query.join(Item, Item.id == Booking.item_id).where(
                or_(Booking.renter_id == user_id, Item.owner_id == user_id)
            )
        query = query.order_by(desc(Booking.created_at), desc(Booking.id))
        return await store.find_many(query)

    @staticmethod
    async def _transition(
        store: LedgerStore,
        booking_id: int,
        expected: BookingStatus,
        target: BookingStatus,
        **values,
    ) -> Booking:
        async with store.transaction():
            booking = await store.find_unique(Booking, booking_id, for_update=True)
            if not booking:
                raise NotFoundError("Booking", booking_id)
            if booking.status != expected:
                raise InvalidTransitionError("booking", booking.status.value, target.value)
            booking = await store.update(booking, status=target, **values)
        return booking

    @staticmethod
    async def record_handover(
        store: LedgerStore,
        booking_id: int,
        actor_id: int,
        photo: Optional[str],
        notes: Optional[str],
    ) -> Booking:
        """
        Owner hands the item over: PENDING -> ONGOING.

        Raises:
            NotFoundError: booking does not exist
            InvalidTransitionError: booking is not PENDING
        """
        booking = await BookingService._transition(
            store, booking_id, BookingStatus.PENDING, BookingStatus.ONGOING,
            handover_photo=photo,
            handover_notes=notes,
            handed_over_at=utcnow(),
        )
        logger.info("Booking %s handed over by user %s", booking_id, actor_id)
        return booking

    @staticmethod
    async def record_return(
        store: LedgerStore,
        booking_id: int,
        actor_id: int,
        photo: Optional[str],
        notes: Optional[str],
    ) -> Booking:
        """
        Item comes back: ONGOING -> COMPLETED.

        Raises:
            NotFoundError: booking does not exist
            InvalidTransitionError: booking is not ONGOING
        """
        booking = await BookingService._transition(
            store, booking_id, BookingStatus.ONGOING, BookingStatus.COMPLETED,
            return_photo=photo,
            return_notes=notes,
            returned_at=utcnow(),
        )
        logger.info("Booking %s returned, recorded by user %s", booking_id, actor_id)
        return booking

    @staticmethod
    async def cancel_booking(store: LedgerStore, booking_id: int, actor_id: int) -> Booking:
        """PENDING -> CANCELLED. Anything past handover cannot be cancelled."""
        booking = await BookingService._transition(
            store, booking_id, BookingStatus.PENDING, BookingStatus.CANCELLED,
            cancelled_at=utcnow(),
        )
        logger.info("Booking %s cancelled by user %s", booking_id, actor_id)
        return booking

    @staticmethod
    async def extend_booking(
        store: LedgerStore,
        booking_id: int,
        actor_id: int,
        new_end_date: Optional[date],
    ) -> Booking:
        """
        Push the effective end date out. Status is left untouched and any
        status is accepted.

        Raises:
            ValidationError: new_end_date missing or not after the current effective end
            NotFoundError: booking does not exist
        """
        if new_end_date is None:
            raise ValidationError("new_end_date is required")

        async with store.transaction():
            booking = await store.find_unique(Booking, booking_id, for_update=True)
            if not booking:
                raise NotFoundError("Booking", booking_id)
            current_end = booking.effective_end_date
            if new_end_date <= current_end:
                raise ValidationError(
                    "new_end_date must be after the current end date",
                    details={"current_end_date": current_end.isoformat(), "new_end_date": new_end_date.isoformat()},
                )
            booking = await store.update(booking, extended_until=new_end_date)

        logger.info("Booking %s extended to %s by user %s", booking_id, new_end_date, actor_id)
        return booking

    @staticmethod
    async def add_availability_window(
        store: LedgerStore,
        item_id: int,
        start_date: date,
        end_date: date,
    ) -> AvailabilityWindow:
        """
        Append an availability window. Overlaps with other windows or with
        bookings are not checked.
        """
        if start_date is None or end_date is None:
            raise ValidationError("start_date and end_date are required")
        if start_date >= end_date:
            raise ValidationError("start_date must be before end_date")

        async with store.transaction():
            item = await store.find_unique(Item, item_id)
            if not item:
                raise NotFoundError("Item", item_id)
            window = await store.create(AvailabilityWindow(
                item_id=item_id,
                start_date=start_date,
                end_date=end_date,
            ))
        return window

    @staticmethod
    async def list_availability_windows(store: LedgerStore, item_id: int) -> Sequence[AvailabilityWindow]:
        query = (
            select(AvailabilityWindow)
            .where(AvailabilityWindow.item_id == item_id)
            .order_by(AvailabilityWindow.start_date, AvailabilityWindow.id)
        )
        return await store.find_many(query)
