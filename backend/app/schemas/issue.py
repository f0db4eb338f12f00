"""
Issue and insurance pool schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from backend.app.models.rental_enums import IssueStatus


class IssueCreate(BaseModel):
    """Schema for raising an issue on a completed booking."""
    booking_id: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=5000)
    photos: List[str] = Field(default_factory=list, max_length=20)


class IssueResolve(BaseModel):
    """
    Admin decision on an issue.

    status is validated by the service so an unknown value is reported
    with the same error shape as other rule violations.
    """
    status: str = Field(..., description="APPROVED, REJECTED or RESOLVED")
    resolution_note: Optional[str] = Field(None, max_length=5000)
    deduct_amount: Optional[float] = Field(None, ge=0, allow_inf_nan=False, description="Pool payout, only used when APPROVED")


class IssueResponse(BaseModel):
    id: int
    booking_id: int
    user_id: int
    description: str
    photos: Optional[List[str]]
    status: IssueStatus
    resolution_note: Optional[str]
    resolved_by: Optional[int]
    resolved_at: Optional[datetime]
    deduction_amount: Optional[int]
    insurance_pool_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class InsurancePoolResponse(BaseModel):
    id: Optional[int] = None
    balance: int
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class IssueEnvelope(BaseModel):
    issue: IssueResponse


class IssueResolutionResponse(BaseModel):
    issue: IssueResponse
    insurance_pool: Optional[InsurancePoolResponse] = None
