"""
Booking, payment and issue enumerations.
"""

import enum


class BookingStatus(str, enum.Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"  # Created by renter, item not yet handed over
    ONGOING = "ONGOING"  # Owner recorded handover
    COMPLETED = "COMPLETED"  # Item returned
    CANCELLED = "CANCELLED"  # Cancelled before handover


TERMINAL_BOOKING_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})


class PaymentStatus(str, enum.Enum):
    """Payment status enumeration."""
    PENDING = "PENDING"  # Gateway order created, waiting for callback
    PAID = "PAID"  # Verified callback received
    FAILED = "FAILED"  # Gateway reported failure


class IssueStatus(str, enum.Enum):
    """Issue status enumeration. Everything except OPEN is final."""
    OPEN = "OPEN"
    APPROVED = "APPROVED"  # Claim accepted, may debit the insurance pool
    REJECTED = "REJECTED"
    RESOLVED = "RESOLVED"  # Settled without a pool payout


RESOLUTION_STATUSES = frozenset({IssueStatus.APPROVED, IssueStatus.REJECTED, IssueStatus.RESOLVED})
