"""
Payment Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict, Any
from backend.app.core.config import settings
from backend.app.models.rental_enums import PaymentStatus


class PaymentCreate(BaseModel):
    """Schema for opening a payment. Amounts are whole currency units."""
    booking_id: int = Field(..., gt=0)
    user_id: Optional[int] = Field(None, gt=0, description="Paying user (defaults to current user)")
    amount: int = Field(..., gt=0, le=settings.max_payment_amount)
    insurance_fee: int = Field(default=0, ge=0, le=settings.max_payment_amount)
    platform_fee: int = Field(default=0, ge=0, le=settings.max_payment_amount)


class PaymentConfirm(BaseModel):
    """Checkout callback forwarded by the client."""
    payment_id: int = Field(..., gt=0)
    gateway_payment_id: str = Field(..., min_length=1, max_length=128)
    gateway_order_id: str = Field(..., min_length=1, max_length=128)
    signature: str = Field(..., min_length=1, max_length=256)


class PaymentFail(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class PaymentResponse(BaseModel):
    """Schema for displaying payments."""
    id: int
    booking_id: int
    user_id: int
    amount: int
    insurance_fee: int
    platform_fee: int
    currency: str
    gateway_order_id: Optional[str]
    gateway_payment_id: Optional[str]
    status: PaymentStatus
    failure_reason: Optional[str]
    paid_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaymentIntentResponse(BaseModel):
    payment: PaymentResponse
    gateway_order: Dict[str, Any]


class PaymentConfirmResponse(BaseModel):
    success: bool = True
    payment: PaymentResponse


class PaymentEnvelope(BaseModel):
    payment: PaymentResponse
