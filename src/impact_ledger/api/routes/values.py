from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends

from impact_ledger.api.dependencies import get_manager
from impact_ledger.api.schemas import LevelUpdateRequest, OrderRequest, ValueCategoryResponse
from impact_ledger.domain.values import VALUE_CATEGORIES, multiplier_for_level
from impact_ledger.manager import LedgerManager
from impact_ledger.models import UserValueSettings, ValueStats

router = APIRouter()


@router.get("/values/categories")
async def list_value_categories() -> list[ValueCategoryResponse]:
    return [ValueCategoryResponse(**asdict(category)) for category in VALUE_CATEGORIES]


@router.get("/users/{user_id}/values")
async def get_values(
    user_id: str,
    manager: Annotated[LedgerManager, Depends(get_manager)],
) -> UserValueSettings:
    return await manager.get_settings(user_id)


@router.get("/users/{user_id}/values/categories")
async def get_user_value_categories(
    user_id: str,
    manager: Annotated[LedgerManager, Depends(get_manager)],
) -> list[ValueCategoryResponse]:
    settings = await manager.get_settings(user_id)
    by_id = {category.id: category for category in VALUE_CATEGORIES}
    result = []
    for category_id in settings.order:
        level = settings.levels[category_id]
        result.append(ValueCategoryResponse(
            **asdict(by_id[category_id]),
            level=level,
            multiplier=multiplier_for_level(level),
        ))
    return result


@router.get("/users/{user_id}/values/stats")
async def get_value_stats(
    user_id: str,
    manager: Annotated[LedgerManager, Depends(get_manager)],
    calculate_rank: bool = False,
) -> ValueStats:
    return await manager.value_stats(user_id, calculate_rank)


# Registered before the category route so "order" is not read as a category id.
@router.put("/users/{user_id}/values/order")
async def reorder_values(
    user_id: str,
    req: OrderRequest,
    manager: Annotated[LedgerManager, Depends(get_manager)],
) -> UserValueSettings:
    return await manager.reorder_categories(user_id, req.order)


@router.put("/users/{user_id}/values/{category_id}")
async def update_value(
    user_id: str,
    category_id: str,
    req: LevelUpdateRequest,
    manager: Annotated[LedgerManager, Depends(get_manager)],
) -> UserValueSettings:
    return await manager.update_value_level(user_id, category_id, req.level)


@router.post("/users/{user_id}/values/reset")
async def reset_values(
    user_id: str,
    manager: Annotated[LedgerManager, Depends(get_manager)],
) -> UserValueSettings:
    return await manager.reset_values(user_id)


@router.post("/users/{user_id}/values/commit")
async def commit_values(
    user_id: str,
    manager: Annotated[LedgerManager, Depends(get_manager)],
) -> UserValueSettings:
    return await manager.commit_values(user_id)
