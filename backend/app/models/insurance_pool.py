"""
Insurance pool database model.

Shared balance funded by per-booking insurance fees and drawn down by
approved damage claims. The first-created row is the deployment's pool.
"""

from sqlalchemy import Column, Integer, CheckConstraint
from backend.app.db.session import Base
from backend.app.models.base import TimestampMixin


class InsurancePool(TimestampMixin, Base):
    __tablename__ = "insurance_pools"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    balance = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_insurance_pool_balance_non_negative"),
    )

    def __repr__(self):
        return f"<InsurancePool(id={self.id}, balance={self.balance})>"
