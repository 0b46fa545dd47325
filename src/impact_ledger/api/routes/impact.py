from typing import Annotated

from fastapi import APIRouter, Depends, Query

from impact_ledger.api.dependencies import get_manager
from impact_ledger.manager import LedgerManager
from impact_ledger.models import ImpactReport

router = APIRouter()


@router.get("/users/{user_id}/impact")
async def get_impact(
    user_id: str,
    manager: Annotated[LedgerManager, Depends(get_manager)],
    limit: Annotated[int, Query(ge=1, le=50)] = 5,
) -> ImpactReport:
    return await manager.compute_impact(user_id, limit=limit)
