from typing import Any

from pydantic import BaseModel, Field, StrictInt

from impact_ledger.models import CreditState


class LevelUpdateRequest(BaseModel):
    level: StrictInt


class OrderRequest(BaseModel):
    order: list[str]


class CreditRequest(BaseModel):
    amount: float = Field(gt=0, allow_inf_nan=False)


class CreditApplicationResponse(BaseModel):
    state: CreditState
    success: bool
    amount_applied: float
    consumed_amount: float
    shortfall: float
    consumed_ids: list[str]


class AnalyzeRequest(BaseModel):
    # Raw bank-provider rows (Plaid-shaped: transaction_id, date, name, merchant_name, amount, category).
    transactions: list[dict[str, Any]]


class ValueCategoryResponse(BaseModel):
    id: str
    name: str
    emoji: str
    default_level: int
    level: int | None = None
    multiplier: float | None = None
