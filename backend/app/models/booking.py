"""
Booking database model.

A reservation of an item by a renter for a date range.
"""

from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, Enum, CheckConstraint
from backend.app.db.session import Base
from backend.app.models.base import TimestampMixin
from backend.app.models.rental_enums import BookingStatus


class Booking(TimestampMixin, Base):
    """
    Booking model.

    Lifecycle: PENDING -> ONGOING (handover) -> COMPLETED (return).
    PENDING -> CANCELLED is the only other exit.
    Bookings are never deleted; payments and issues reference them.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    item_id = Column(Integer, ForeignKey('items.id'), nullable=False, index=True)
    renter_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    extended_until = Column(Date, nullable=True)

    status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False, index=True)

    # Evidence captured by the owner at handover and return
    handover_photo = Column(String(1024), nullable=True)
    handover_notes = Column(Text, nullable=True)
    handed_over_at = Column(DateTime(timezone=True), nullable=True)
    return_photo = Column(String(1024), nullable=True)
    return_notes = Column(Text, nullable=True)
    returned_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_booking_dates_ordered"),
    )

    @property
    def effective_end_date(self):
        return self.extended_until or self.end_date

    def __repr__(self):
        return f"<Booking(id={self.id}, item_id={self.item_id}, status='{self.status.value}')>"
