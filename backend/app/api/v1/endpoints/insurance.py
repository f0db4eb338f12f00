"""
Insurance pool API Endpoints (Admin only).
"""

from fastapi import APIRouter, Depends

from backend.app.db.ledger_store import LedgerStore, get_ledger_store
from backend.app.domain.insurance.pool_ledger import InsurancePoolLedger
from backend.app.core.guards import require_admin
from backend.app.schemas.issue import InsurancePoolResponse

router = APIRouter(prefix="/admin", tags=["Admin - Insurance"])


@router.get("/insurance-pool", response_model=InsurancePoolResponse, response_model_exclude_none=True)
async def get_insurance_pool(
    current_user: dict = Depends(require_admin),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Current pool balance. Reports 0 before the pool has been created."""
    pool = await InsurancePoolLedger.current(store)
    if pool is None:
        return {"balance": 0}
    return pool
