from typing import Annotated

from fastapi import APIRouter, Depends

from impact_ledger.api.dependencies import get_manager
from impact_ledger.api.schemas import AnalyzeRequest
from impact_ledger.manager import LedgerManager
from impact_ledger.models import AnalysisReport, Transaction

router = APIRouter()


@router.get("/users/{user_id}/transactions")
async def get_transactions(
    user_id: str,
    manager: Annotated[LedgerManager, Depends(get_manager)],
) -> list[Transaction]:
    return await manager.get_transactions(user_id)


@router.post("/users/{user_id}/transactions/analyze")
async def analyze_transactions(
    user_id: str,
    req: AnalyzeRequest,
    manager: Annotated[LedgerManager, Depends(get_manager)],
) -> AnalysisReport:
    return await manager.analyze_transactions(user_id, req.transactions)
