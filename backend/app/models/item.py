"""
Item database model.

Listings are managed elsewhere; bookings only need the owner link.
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from backend.app.db.session import Base
from backend.app.models.base import TimestampMixin


class Item(TimestampMixin, Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Item(id={self.id}, title='{self.title}', owner_id={self.owner_id})>"
