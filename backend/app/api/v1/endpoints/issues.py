"""
Issue API Endpoints.

Owners raise issues on completed bookings; admins resolve them, optionally
paying out of the insurance pool.
"""

from fastapi import APIRouter, Depends, status, Path
from typing import List

from backend.app.db.ledger_store import LedgerStore, get_ledger_store
from backend.app.domain.issues.issue_service import IssueService
from backend.app.core.dependencies import get_current_user
from backend.app.schemas.issue import (
    IssueCreate, IssueResolve, IssueResponse, IssueEnvelope, IssueResolutionResponse,
)
from backend.app.services.audit import record_event, AuditAction
from backend.app.services.notification_service import NotificationDispatcher, get_notification_dispatcher

router = APIRouter(prefix="/issues", tags=["Issues"])


@router.post("", response_model=IssueEnvelope, status_code=status.HTTP_201_CREATED)
async def raise_issue(
    payload: IssueCreate,
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    """
    Raise an issue on a COMPLETED booking (item owner only).

    The booking's state is checked before the caller's role.
    """
    issue = await IssueService.raise_issue(
        store,
        booking_id=payload.booking_id,
        reporter_id=current_user["user_id"],
        reporter_role=current_user.get("role"),
        description=payload.description,
        photos=payload.photos,
    )

    await record_event(
        db=store.session,
        action=AuditAction.ISSUE_RAISED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        entity_type="issue",
        entity_id=issue.id,
        metadata={"booking_id": issue.booking_id}
    )

    return {"issue": issue}


@router.get("", response_model=List[IssueResponse])
async def list_issues(
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store)
):
    return await IssueService.list_issues(store, current_user["user_id"], current_user.get("role"))


@router.patch("/{issue_id}/resolve", response_model=IssueResolutionResponse)
async def resolve_issue(
    payload: IssueResolve,
    issue_id: int = Path(..., description="Issue ID"),
    current_user: dict = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """
    Resolve an OPEN issue (Admin only).

    insurance_pool is null unless the resolution drew on the pool.
    """
    issue, pool = await IssueService.resolve_issue(
        store,
        issue_id=issue_id,
        admin_id=current_user["user_id"],
        admin_role=current_user.get("role"),
        new_status=payload.status,
        resolution_note=payload.resolution_note,
        deduct_amount=payload.deduct_amount,
    )

    await IssueService.notify_issue_resolved(store, dispatcher, issue)
    await record_event(
        db=store.session,
        action=AuditAction.ISSUE_RESOLVED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        entity_type="issue",
        entity_id=issue.id,
        metadata={
            "status": issue.status.value,
            "deduction_amount": issue.deduction_amount,
            "insurance_pool_id": issue.insurance_pool_id,
        }
    )

    return {"issue": issue, "insurance_pool": pool}
