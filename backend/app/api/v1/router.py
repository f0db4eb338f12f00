"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import bookings, payments, issues, insurance

router = APIRouter()

# Booking lifecycle and item availability
router.include_router(bookings.router)
router.include_router(bookings.items_router)

# Payment reconciliation
router.include_router(payments.router)

# Disputes and the insurance pool
router.include_router(issues.router)
router.include_router(insurance.router)
