from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class Transaction(BaseModel):
    id: str | None = None
    date: str = ""
    name: str = ""
    merchant_name: str | None = None
    amount: float = 0.0
    provider_transaction_id: str | None = None
    provider_categories: list[str] = Field(default_factory=list)

    unethical_practices: list[str] = Field(default_factory=list)
    ethical_practices: list[str] = Field(default_factory=list)
    practice_weights: dict[str, float] = Field(default_factory=dict) # practice -> percent of amount
    practice_categories: dict[str, str] = Field(default_factory=dict) # practice -> value category name
    practice_search_terms: dict[str, str] = Field(default_factory=dict)
    information: dict[str, str] = Field(default_factory=dict)
    citations: dict[str, list[str]] = Field(default_factory=dict)

    analyzed: bool = False
    credit_applied: bool = False
    is_credit_application: bool = False
    societal_debt: float | None = None # legacy aggregate, > 0 debt, < 0 credit

    @model_validator(mode="after")
    def _derive_id(self) -> "Transaction":
        if not self.id:
            self.id = transaction_identifier(
                self.provider_transaction_id, self.date, self.name, self.amount
            )
        return self


def transaction_identifier(
    provider_transaction_id: str | None,
    date: str,
    name: str,
    amount: float,
) -> str:
    if provider_transaction_id and provider_transaction_id.strip():
        return f"plaid-{provider_transaction_id.strip()}"
    return f"{date}-{name.strip().upper()}-{amount:.2f}"


class ClassificationResult(BaseModel):
    matching_transaction_id: str
    unethical_practices: list[str] = Field(default_factory=list)
    ethical_practices: list[str] = Field(default_factory=list)
    practice_weights: dict[str, float] = Field(default_factory=dict)
    practice_categories: dict[str, str] = Field(default_factory=dict)
    practice_search_terms: dict[str, str] = Field(default_factory=dict)
    information: dict[str, str] = Field(default_factory=dict)
    citations: dict[str, list[str]] = Field(default_factory=dict)


AnalysisSource = Literal["openai", "manual", "cache"]


class VendorAnalysis(BaseModel):
    """A cached classification for one normalized vendor name."""
    original_name: str | None = None
    analysis_source: AnalysisSource | None = None
    analyzed_at: datetime | None = None
    unethical_practices: list[str] = Field(default_factory=list)
    ethical_practices: list[str] = Field(default_factory=list)
    practice_weights: dict[str, float] = Field(default_factory=dict)
    practice_categories: dict[str, str] = Field(default_factory=dict)
    practice_search_terms: dict[str, str] = Field(default_factory=dict)
    information: dict[str, str] = Field(default_factory=dict)
    citations: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return bool(self.original_name and self.analysis_source)


# Fields copied between classification results, cache entries and transactions.
CLASSIFICATION_FIELDS = (
    "unethical_practices",
    "ethical_practices",
    "practice_weights",
    "practice_categories",
    "practice_search_terms",
    "information",
    "citations",
)


class UserValueSettings(BaseModel):
    levels: dict[str, int]
    order: list[str]
    values_hash: str = ""
    committed_until: datetime | None = None


class CreditState(BaseModel):
    user_id: str
    available_credit: float = Field(default=0.0, ge=0)
    applied_credit: float = Field(default=0.0, ge=0)
    last_applied_amount: float = 0.0
    last_applied_at: datetime | None = None
    credit_transaction_ids: list[str] = Field(default_factory=list)


class ImpactAnalysis(BaseModel):
    positive_impact: float = 0.0
    negative_impact: float = 0.0
    net_societal_debt: float = 0.0
    net_ethical_balance: float = 0.0
    effective_debt: float = 0.0
    debt_percentage: float = 0.0
    applied_credit: float = 0.0
    available_credit: float = 0.0
    total_transactions: int = 0
    transactions_with_debt: int = 0
    transactions_with_credit: int = 0


class CategoryImpact(BaseModel):
    positive_impact: float = 0.0
    negative_impact: float = 0.0
    total_spent: float = 0.0


class RankedCategory(BaseModel):
    name: str
    amount: float


class PracticeImpact(BaseModel):
    practice: str
    amount: float = 0.0 # unethical adds, ethical subtracts
    search_term: str | None = None


class BatchSummary(BaseModel):
    transactions: list[Transaction]
    total_societal_debt: float = 0.0
    debt_percentage: float = 0.0
    total_positive_impact: float = 0.0
    total_negative_impact: float = 0.0


class CreditApplication(BaseModel):
    state: CreditState
    amount_applied: float
    consumed_amount: float
    shortfall: float # > 0 not enough credit found, < 0 overshoot
    consumed_ids: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.amount_applied > 0


class ImpactReport(BaseModel):
    analysis: ImpactAnalysis
    analyzing: bool = False
    top_negative_categories: list[RankedCategory] = Field(default_factory=list)
    top_positive_categories: list[RankedCategory] = Field(default_factory=list)
    practices: list[PracticeImpact] = Field(default_factory=list)


class CreditOverview(BaseModel):
    state: CreditState
    phase: str
    applying: bool = False


class AnalysisReport(BaseModel):
    batch: BatchSummary
    cache_hits: int = 0
    cache_writes: list[str] = Field(default_factory=list)
    unresolved_ids: list[str] = Field(default_factory=list)


class UserLedger(BaseModel):
    """In-memory snapshot of one user's state. Replaced whole, never mutated."""
    user_id: str
    settings: UserValueSettings
    credit: CreditState
    transactions: list[Transaction] = Field(default_factory=list)


class ValueStats(BaseModel):
    values_hash: str
    matching_users: int = 0
    rank: int | None = None
    total_in_rank: int | None = None
