"""
Availability window model.

Owner-curated date ranges when an item can be rented. Append-only.
"""

from sqlalchemy import Column, Integer, Date, DateTime, ForeignKey
from backend.app.db.session import Base
from backend.app.models.base import utcnow


class AvailabilityWindow(Base):
    __tablename__ = "availability_windows"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey('items.id'), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    # Immutable - no updated_at
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<AvailabilityWindow(item_id={self.item_id}, {self.start_date}..{self.end_date})>"
