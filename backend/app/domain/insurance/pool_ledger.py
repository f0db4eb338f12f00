"""
Insurance Pool Ledger (Domain Logic).

Credits and debits against the deployment's single insurance pool. These
methods never commit: they run inside the caller's transaction so the
balance change lands together with the payment or issue update that
caused it.
"""

import logging
import math
from typing import Optional, Tuple

from backend.app.core.exceptions import ValidationError, InvalidStateError
from backend.app.db.ledger_store import LedgerStore
from backend.app.models.insurance_pool import InsurancePool

logger = logging.getLogger("rentivo.insurance")


class InsurancePoolLedger:

    @staticmethod
    async def current(store: LedgerStore) -> Optional[InsurancePool]:
        """The pool as it is now, or None if nothing has touched it yet."""
        return await store.find_first(InsurancePool)

    @staticmethod
    async def lock_or_create(store: LedgerStore) -> InsurancePool:
        """
        Row-lock the pool for the rest of the transaction, creating it with
        a zero balance on first use.
        """
        pool = await store.find_first(InsurancePool, for_update=True)
        if pool is None:
            pool = await store.create(InsurancePool(balance=0))
            logger.info("Created insurance pool %s", pool.id)
        return pool

    @staticmethod
    async def credit(store: LedgerStore, amount: int) -> InsurancePool:
        if amount < 0:
            raise ValidationError("Credit amount cannot be negative")
        pool = await InsurancePoolLedger.lock_or_create(store)
        if amount:
            await store.increment(InsurancePool, pool.id, "balance", amount)
            pool = await store.find_unique(InsurancePool, pool.id)
        return pool

    @staticmethod
    async def debit_clamped(store: LedgerStore, requested: float) -> Tuple[InsurancePool, int]:
        """
        Take up to ``floor(requested)`` from the pool, never more than its
        balance.

        Returns:
            (pool after the debit, amount actually debited)
        """
        if not math.isfinite(requested):
            raise ValidationError("Deduction amount must be a finite number")
        if requested < 0:
            raise ValidationError("Deduction amount cannot be negative")

        pool = await InsurancePoolLedger.lock_or_create(store)
        debit = min(pool.balance, math.floor(requested))

        if debit > 0:
            if not await store.guarded_decrement(InsurancePool, pool.id, "balance", debit):
                # Only reachable if the row lock is not honoured by the backend
                raise InvalidStateError(
                    "Insurance pool balance changed during debit",
                    details={"pool_id": pool.id, "debit": debit},
                )
            pool = await store.find_unique(InsurancePool, pool.id)

        if debit < requested:
            logger.warning(
                "Insurance pool %s debit clamped: requested %s, debited %s", pool.id, requested, debit
            )
        return pool, debit
