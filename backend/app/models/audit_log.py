"""
Audit Log Database Model.

Append-only trail of booking, payment and dispute transitions, kept for
financial audit alongside the never-deleted ledger rows.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from backend.app.db.session import Base
from backend.app.models.base import utcnow


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - BOOKING_CREATED / BOOKING_HANDED_OVER / BOOKING_RETURNED / BOOKING_EXTENDED / BOOKING_CANCELLED
    - PAYMENT_INITIATED / PAYMENT_CONFIRMED / PAYMENT_FAILED
    - ISSUE_RAISED / ISSUE_RESOLVED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed, and on what
    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
