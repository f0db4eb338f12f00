"""
Audit logging service for booking, payment and dispute transitions.

Entries are written after the business transaction commits, so an audit
row always describes a state that actually exists.
"""

import logging
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog

logger = logging.getLogger("rentivo.audit")


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_HANDED_OVER = "BOOKING_HANDED_OVER"
    BOOKING_RETURNED = "BOOKING_RETURNED"
    BOOKING_EXTENDED = "BOOKING_EXTENDED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    AVAILABILITY_ADDED = "AVAILABILITY_ADDED"

    PAYMENT_INITIATED = "PAYMENT_INITIATED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PAYMENT_FAILED = "PAYMENT_FAILED"

    ISSUE_RAISED = "ISSUE_RAISED"
    ISSUE_RESOLVED = "ISSUE_RESOLVED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Record an event in the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_username: Username of actor
        entity_type: Table the event is about ("booking", "payment", "issue")
        entity_id: Primary key of that row
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.commit()

    return audit_log


async def record_event(db: AsyncSession, action: str, **fields) -> Optional[AuditLog]:
    """
    Best-effort log_event for use after a business transaction has committed.

    A failed audit write is logged instead of failing a request whose
    transition already committed. Callers must not reuse the session
    afterwards; it is discarded with the request.
    """
    try:
        return await log_event(db, action, **fields)
    except Exception:
        logger.exception(
            "Audit write failed for %s on %s:%s",
            action, fields.get("entity_type"), fields.get("entity_id"),
        )
        return None


async def get_entity_history(
    db: AsyncSession,
    entity_type: str,
    entity_id: int,
    limit: int = 100
) -> list[AuditLog]:
    """
    Get the audit trail for one booking, payment or issue, most recent first.
    """
    query = select(AuditLog).where(
        AuditLog.entity_type == entity_type,
        AuditLog.entity_id == entity_id,
    ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
