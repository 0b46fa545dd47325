from typing import Annotated

from fastapi import APIRouter, Depends

from impact_ledger.api.dependencies import get_manager
from impact_ledger.api.schemas import CreditApplicationResponse, CreditRequest
from impact_ledger.manager import LedgerManager
from impact_ledger.models import CreditOverview

router = APIRouter()


@router.get("/users/{user_id}/credit")
async def get_credit(
    user_id: str,
    manager: Annotated[LedgerManager, Depends(get_manager)],
) -> CreditOverview:
    return await manager.get_credit(user_id)


@router.post("/users/{user_id}/credit/apply")
async def apply_credit(
    user_id: str,
    req: CreditRequest,
    manager: Annotated[LedgerManager, Depends(get_manager)],
) -> CreditApplicationResponse:
    application = await manager.apply_credit(user_id, req.amount)
    return CreditApplicationResponse(**application.model_dump(), success=application.success)
