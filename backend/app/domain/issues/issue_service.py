"""
Issue Service (Domain Logic).

Owners raise issues against completed bookings; admins resolve them.
An APPROVED resolution with a deduction draws from the insurance pool in
the same transaction as the issue update, so either both land or neither.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple, Union

from sqlalchemy import select, desc

from backend.app.core.exceptions import ValidationError, NotFoundError, ForbiddenError, InvalidStateError
from backend.app.db.ledger_store import LedgerStore
from backend.app.domain.insurance.pool_ledger import InsurancePoolLedger
from backend.app.models.base import utcnow
from backend.app.models.booking import Booking
from backend.app.models.enums import UserRole
from backend.app.models.insurance_pool import InsurancePool
from backend.app.models.issue import Issue
from backend.app.models.item import Item
from backend.app.models.rental_enums import BookingStatus, IssueStatus, RESOLUTION_STATUSES
from backend.app.models.user import User
from backend.app.services.notification_service import NotificationDispatcher, notifications_for

logger = logging.getLogger("rentivo.issues")


def _role(role: Union[str, UserRole, None]) -> Optional[UserRole]:
    if role is None or isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


class IssueService:

    @staticmethod
    async def raise_issue(
        store: LedgerStore,
        booking_id: int,
        reporter_id: int,
        reporter_role: Union[str, UserRole],
        description: str,
        photos: Optional[List[str]] = None,
    ) -> Issue:
        """
        Open a dispute on a completed booking.

        Booking state is checked before the caller's role, so a booking
        that is not COMPLETED is reported as such to everyone.

        Raises:
            ValidationError: description missing
            NotFoundError: booking does not exist
            InvalidStateError: booking is not COMPLETED
            ForbiddenError: caller is not the OWNER of the booked item
        """
        if not description or not description.strip():
            raise ValidationError("description is required")

        async with store.transaction():
            booking = await store.find_unique(Booking, booking_id)
            if not booking:
                raise NotFoundError("Booking", booking_id)
            if booking.status != BookingStatus.COMPLETED:
                raise InvalidStateError(
                    f"Issues can only be raised on COMPLETED bookings (booking {booking_id} is {booking.status.value})",
                    details={"booking_id": booking_id, "status": booking.status.value},
                )
            if _role(reporter_role) != UserRole.OWNER:
                raise ForbiddenError("Only item owners can raise issues")
            item = await store.find_unique(Item, booking.item_id)
            if not item or item.owner_id != reporter_id:
                raise ForbiddenError("You do not own the item for this booking")

            issue = await store.create(Issue(
                booking_id=booking_id,
                user_id=reporter_id,
                description=description.strip(),
                photos=photos or [],
                status=IssueStatus.OPEN,
            ))

        logger.info("Issue %s raised on booking %s by owner %s", issue.id, booking_id, reporter_id)
        return issue

    @staticmethod
    async def resolve_issue(
        store: LedgerStore,
        issue_id: int,
        admin_id: int,
        admin_role: Union[str, UserRole],
        new_status: Union[str, IssueStatus],
        resolution_note: Optional[str] = None,
        deduct_amount: Optional[float] = None,
    ) -> Tuple[Issue, Optional[InsurancePool]]:
        """
        Adjudicate an OPEN issue.

        When the outcome is APPROVED with a positive deduction, the pool is
        debited by min(balance, floor(deduct_amount)) and linked to the
        issue. The balance never goes below zero.

        Returns:
            (issue, pool) where pool is None unless it was debited

        Raises:
            ForbiddenError: caller is not an ADMIN
            ValidationError: bad status, or a negative or non-finite deduction
            NotFoundError: issue does not exist
            InvalidStateError: issue already resolved
        """
        if _role(admin_role) != UserRole.ADMIN:
            raise ForbiddenError("Only admins can resolve issues")

        try:
            status = IssueStatus(new_status)
        except ValueError:
            status = None
        if status not in RESOLUTION_STATUSES:
            raise ValidationError(
                "status must be one of APPROVED, REJECTED, RESOLVED",
                details={"status": str(new_status)},
            )
        if deduct_amount is not None:
            if not math.isfinite(deduct_amount):
                raise ValidationError(
                    "deduct_amount must be a finite number",
                    details={"deduct_amount": str(deduct_amount)},
                )
            if deduct_amount < 0:
                raise ValidationError("deduct_amount cannot be negative")

        pool = None
        async with store.transaction():
            issue = await store.find_unique(Issue, issue_id, for_update=True)
            if not issue:
                raise NotFoundError("Issue", issue_id)
            if issue.status != IssueStatus.OPEN:
                raise InvalidStateError(
                    f"Issue {issue_id} is already {issue.status.value}",
                    details={"issue_id": issue_id, "status": issue.status.value},
                )

            changes = dict(
                status=status,
                resolution_note=resolution_note,
                resolved_by=admin_id,
                resolved_at=utcnow(),
            )
            if status == IssueStatus.APPROVED and deduct_amount and deduct_amount > 0:
                pool, debited = await InsurancePoolLedger.debit_clamped(store, deduct_amount)
                changes.update(insurance_pool_id=pool.id, deduction_amount=debited)

            # The row lock is not honoured everywhere; only the first resolution may land
            won = await store.compare_and_set(
                Issue, issue.id, expected={"status": IssueStatus.OPEN}, values=changes
            )
            if not won:
                raise InvalidStateError(
                    f"Issue {issue_id} was resolved concurrently",
                    details={"issue_id": issue_id},
                )
            issue = await store.find_unique(Issue, issue.id)

        logger.info(
            "Issue %s resolved as %s by admin %s (deducted %s)",
            issue.id, status.value, admin_id, issue.deduction_amount,
        )
        return issue, pool

    @staticmethod
    async def list_issues(
        store: LedgerStore,
        caller_id: int,
        caller_role: Union[str, UserRole],
    ) -> Sequence[Issue]:
        """All issues for admins, own issues for owners, newest first."""
        role = _role(caller_role)
        query = select(Issue)
        if role == UserRole.OWNER:
            query = query.where(Issue.user_id == caller_id)
        elif role != UserRole.ADMIN:
            raise ForbiddenError("Only admins and owners can list issues")
        query = query.order_by(desc(Issue.created_at), desc(Issue.id))
        return await store.find_many(query)

    @staticmethod
    async def notify_issue_resolved(
        store: LedgerStore,
        dispatcher: NotificationDispatcher,
        issue: Issue,
    ) -> None:
        """Queue resolution messages for the reporting owner and the renter."""
        booking = await store.find_unique(Booking, issue.booking_id)
        owner = await store.find_unique(User, issue.user_id)
        renter = await store.find_unique(User, booking.renter_id) if booking else None
        note = issue.resolution_note or "No note provided"
        event_key = f"issue-resolved:{issue.id}"
        subject = f"Issue #{issue.id} {issue.status.value}"
        email_body = (
            f"<p>The issue on booking {issue.booking_id} was marked {issue.status.value}.</p>"
            f"<p>{note}</p>"
        )
        sms_body = f"Issue #{issue.id} on booking {issue.booking_id}: {issue.status.value}. {note}"

        messages = notifications_for(owner, event_key, subject, email_body, sms_body)
        messages += notifications_for(renter, event_key, subject, email_body, sms_body)
        dispatcher.dispatch(messages)
