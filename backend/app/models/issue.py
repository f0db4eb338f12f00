"""
Issue database model.

Owner-raised dispute against a completed booking, adjudicated by an admin.
"""

from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, Enum, JSON
from backend.app.db.session import Base
from backend.app.models.base import TimestampMixin
from backend.app.models.rental_enums import IssueStatus


class Issue(TimestampMixin, Base):
    """
    Issue model.

    Resolved exactly once. deduction_amount is what was actually taken
    from the pool, which may be less than requested when the balance is low.
    """
    __tablename__ = "issues"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)  # Reporter (owner)

    description = Column(Text, nullable=False)
    photos = Column(JSON, nullable=True)

    status = Column(Enum(IssueStatus), default=IssueStatus.OPEN, nullable=False, index=True)

    # Resolution
    resolution_note = Column(Text, nullable=True)
    resolved_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    deduction_amount = Column(Integer, nullable=True)
    insurance_pool_id = Column(Integer, ForeignKey('insurance_pools.id'), nullable=True)

    def __repr__(self):
        return f"<Issue(id={self.id}, booking_id={self.booking_id}, status='{self.status.value}')>"
