"""
User database model.

Accounts are created by the account service; this core only reads
contact details and roles.
"""

from sqlalchemy import Column, Integer, String, Boolean, Enum
from backend.app.db.session import Base
from backend.app.models.base import TimestampMixin
from backend.app.models.enums import UserRole


class User(TimestampMixin, Base):
    """
    User model.

    email and phone are the notification addresses; either may be missing.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    phone = Column(String(32), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    role = Column(Enum(UserRole), default=UserRole.RENTER, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}')>"
