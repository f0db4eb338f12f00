"""
Payment database model.

One payment attempt for a booking, backed by a gateway order.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, CheckConstraint
from backend.app.db.session import Base
from backend.app.models.base import TimestampMixin
from backend.app.models.rental_enums import PaymentStatus


class Payment(TimestampMixin, Base):
    """
    Payment model.

    Amounts are whole currency units; the gateway receives them multiplied
    by the minor-unit factor. amount is never updated after insert.
    Status moves PENDING -> PAID or PENDING -> FAILED exactly once.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Financials
    amount = Column(Integer, nullable=False)
    insurance_fee = Column(Integer, nullable=False, default=0)
    platform_fee = Column(Integer, nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="INR")

    # Gateway references
    gateway_order_id = Column(String(128), nullable=True, unique=True, index=True)
    gateway_payment_id = Column(String(128), nullable=True, index=True)

    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    failure_reason = Column(String(500), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        CheckConstraint("insurance_fee >= 0 AND platform_fee >= 0", name="ck_payment_fees_non_negative"),
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, booking_id={self.booking_id}, status='{self.status.value}', amount={self.amount})>"
