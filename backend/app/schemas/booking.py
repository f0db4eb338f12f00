"""
Booking Pydantic schemas.

Defines request and response models for the booking lifecycle.
"""

from pydantic import BaseModel, Field
from datetime import datetime, date
from typing import Optional
from backend.app.models.rental_enums import BookingStatus


class BookingCreate(BaseModel):
    """Schema for creating a booking. renter_id defaults to the caller."""
    item_id: int = Field(..., gt=0, description="Item being rented")
    renter_id: Optional[int] = Field(None, gt=0, description="Renter (defaults to current user)")
    start_date: date = Field(..., description="First day of the rental")
    end_date: date = Field(..., description="Last day of the rental (after start_date)")


class HandoverRecord(BaseModel):
    """Evidence captured when the owner hands the item over."""
    photo: Optional[str] = Field(None, max_length=1024, description="Photo reference (URL or storage key)")
    notes: Optional[str] = Field(None, max_length=2000)


class ReturnRecord(BaseModel):
    """Evidence captured when the item comes back."""
    photo: Optional[str] = Field(None, max_length=1024, description="Photo reference (URL or storage key)")
    notes: Optional[str] = Field(None, max_length=2000)


class BookingExtend(BaseModel):
    new_end_date: date = Field(..., description="New end date, after the current one")


class BookingResponse(BaseModel):
    """Schema for booking response."""
    id: int
    item_id: int
    renter_id: int
    start_date: date
    end_date: date
    extended_until: Optional[date]
    status: BookingStatus
    handover_photo: Optional[str]
    handover_notes: Optional[str]
    handed_over_at: Optional[datetime]
    return_photo: Optional[str]
    return_notes: Optional[str]
    returned_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BookingEnvelope(BaseModel):
    booking: BookingResponse


class AvailabilityCreate(BaseModel):
    start_date: date
    end_date: date


class AvailabilityResponse(BaseModel):
    id: int
    item_id: int
    start_date: date
    end_date: date
    created_at: datetime

    class Config:
        from_attributes = True


class AvailabilityEnvelope(BaseModel):
    availability: AvailabilityResponse


class AuditEntryResponse(BaseModel):
    """One entry of a booking's audit trail."""
    id: int
    action: str
    actor_id: Optional[int]
    actor_username: Optional[str]
    meta_data: Optional[dict]
    timestamp: datetime

    class Config:
        from_attributes = True
