"""
Value-weighted impact aggregation.

Every function here is a pure projection of (transactions, value settings,
applied credit). Missing optional data defaults instead of raising: weight 0,
unmapped category, neutral level.
"""
from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from impact_ledger.domain.values import multiplier_for_category
from impact_ledger.models import (
    BatchSummary,
    CategoryImpact,
    ImpactAnalysis,
    PracticeImpact,
    RankedCategory,
    Transaction,
    UserValueSettings,
)

# Contributions at or below this magnitude are float noise.
IMPACT_EPSILON = 0.005


@dataclass(frozen=True)
class PracticeBased:
    practices: tuple[str, ...]


@dataclass(frozen=True)
class LegacyAggregate:
    amount: float


ImpactSource = PracticeBased | LegacyAggregate | None


def negative_source(tx: Transaction) -> ImpactSource:
    if tx.unethical_practices:
        return PracticeBased(tuple(tx.unethical_practices))
    if tx.societal_debt is not None and tx.societal_debt > 0:
        return LegacyAggregate(tx.societal_debt)
    return None


def positive_source(tx: Transaction) -> ImpactSource:
    if tx.ethical_practices:
        return PracticeBased(tuple(tx.ethical_practices))
    if tx.societal_debt is not None and tx.societal_debt < 0:
        return LegacyAggregate(abs(tx.societal_debt))
    return None


def practice_amount(tx: Transaction, practice: str) -> float:
    weight = tx.practice_weights.get(practice) or 0.0
    return (tx.amount or 0.0) * (weight / 100)


def transaction_negative_impact(
    tx: Transaction,
    settings: UserValueSettings | None = None,
) -> float:
    if tx.is_credit_application:
        return 0.0
    source = negative_source(tx)
    if isinstance(source, PracticeBased):
        return sum(
            practice_amount(tx, practice)
            * multiplier_for_category(tx.practice_categories.get(practice), settings)
            for practice in source.practices
        )
    if isinstance(source, LegacyAggregate):
        # Legacy aggregates are never scaled by value multipliers.
        return source.amount
    return 0.0


def transaction_positive_impact(tx: Transaction) -> float:
    if tx.credit_applied:
        return 0.0
    source = positive_source(tx)
    if isinstance(source, PracticeBased):
        return sum(practice_amount(tx, practice) for practice in source.practices)
    if isinstance(source, LegacyAggregate):
        return source.amount
    return 0.0


def negative_impact(
    transactions: Iterable[Transaction] | None,
    settings: UserValueSettings | None = None,
) -> float:
    return sum(transaction_negative_impact(tx, settings) for tx in transactions or [])


def positive_impact(transactions: Iterable[Transaction] | None) -> float:
    return sum(transaction_positive_impact(tx) for tx in transactions or [])


def total_spend(transactions: Iterable[Transaction] | None) -> float:
    return sum(tx.amount or 0.0 for tx in transactions or [] if not tx.is_credit_application)


def debt_percentage(
    transactions: list[Transaction] | None,
    settings: UserValueSettings | None = None,
) -> float:
    spent = total_spend(transactions)
    if spent <= 0:
        return 0.0
    return negative_impact(transactions, settings) / spent * 100


def category_impacts(
    transactions: Iterable[Transaction] | None,
    settings: UserValueSettings | None = None,
) -> dict[str, CategoryImpact]:
    impacts: dict[str, CategoryImpact] = {}
    contributors: dict[str, set[str]] = {}

    def bucket(category: str) -> CategoryImpact:
        if category not in impacts:
            impacts[category] = CategoryImpact()
            contributors[category] = set()
        return impacts[category]

    def count_spend(category: str, tx: Transaction) -> None:
        tx_key = tx.id or str(id(tx))
        if tx_key not in contributors[category]:
            contributors[category].add(tx_key)
            impacts[category].total_spent += tx.amount or 0.0

    for tx in transactions or []:
        negative = negative_source(tx)
        if not tx.is_credit_application and isinstance(negative, PracticeBased):
            for practice in negative.practices:
                category = tx.practice_categories.get(practice)
                if not category:
                    continue
                amount = practice_amount(tx, practice) * multiplier_for_category(category, settings)
                if abs(amount) > IMPACT_EPSILON:
                    bucket(category).negative_impact += amount
                    count_spend(category, tx)

        positive = positive_source(tx)
        if not tx.credit_applied and isinstance(positive, PracticeBased):
            for practice in positive.practices:
                category = tx.practice_categories.get(practice)
                if not category:
                    continue
                amount = practice_amount(tx, practice)
                if abs(amount) > IMPACT_EPSILON:
                    bucket(category).positive_impact += amount
                    count_spend(category, tx)

    return impacts


def _top(entries: dict[str, float], limit: int) -> list[RankedCategory]:
    ranked = sorted(
        (RankedCategory(name=name, amount=amount) for name, amount in entries.items()
         if amount > IMPACT_EPSILON),
        key=lambda entry: entry.amount,
        reverse=True,
    )
    return ranked[:limit]


def top_negative_categories(
    transactions: Iterable[Transaction] | None,
    settings: UserValueSettings | None = None,
    limit: int = 5,
) -> list[RankedCategory]:
    impacts = category_impacts(transactions, settings)
    return _top({name: impact.negative_impact for name, impact in impacts.items()}, limit)


def top_positive_categories(
    transactions: Iterable[Transaction] | None,
    limit: int = 5,
) -> list[RankedCategory]:
    impacts = category_impacts(transactions)
    return _top({name: impact.positive_impact for name, impact in impacts.items()}, limit)


def impact_analysis(
    transactions: list[Transaction] | None,
    applied_credit: float = 0.0,
    settings: UserValueSettings | None = None,
) -> ImpactAnalysis:
    transactions = transactions or []
    applied_credit = applied_credit or 0.0
    negative = negative_impact(transactions, settings)
    positive = positive_impact(transactions)
    spent = total_spend(transactions)

    return ImpactAnalysis(
        positive_impact=positive,
        negative_impact=negative,
        net_societal_debt=negative - positive,
        net_ethical_balance=positive - negative,
        effective_debt=max(0.0, negative - applied_credit),
        debt_percentage=negative / spent * 100 if spent > 0 else 0.0,
        applied_credit=applied_credit,
        available_credit=max(0.0, positive - applied_credit),
        total_transactions=len(transactions),
        # Counted by presence, not by the value-adjusted amount.
        transactions_with_debt=sum(1 for tx in transactions if negative_source(tx) is not None),
        transactions_with_credit=sum(1 for tx in transactions if positive_source(tx) is not None),
    )


def practice_impacts(transactions: Iterable[Transaction] | None) -> dict[str, PracticeImpact]:
    impacts: dict[str, PracticeImpact] = {}

    def entry(tx: Transaction, practice: str) -> PracticeImpact:
        if practice not in impacts:
            impacts[practice] = PracticeImpact(
                practice=practice,
                search_term=tx.practice_search_terms.get(practice),
            )
        return impacts[practice]

    for tx in transactions or []:
        for practice in tx.unethical_practices:
            entry(tx, practice).amount += practice_amount(tx, practice)
        for practice in tx.ethical_practices:
            entry(tx, practice).amount -= practice_amount(tx, practice)
    return impacts


def summarize_batch(
    transactions: list[Transaction] | None,
    settings: UserValueSettings | None = None,
) -> BatchSummary:
    """
    Totals for a transaction batch about to be persisted. Each transaction's
    legacy ``societal_debt`` is refreshed from its practices (unscaled) so the
    stored batch stays readable without the practice detail.
    """
    transactions = transactions or []
    negative = negative_impact(transactions, settings)

    refreshed: list[Transaction] = []
    for tx in transactions:
        if tx.unethical_practices or tx.ethical_practices:
            debt = sum(practice_amount(tx, p) for p in tx.unethical_practices) \
                - sum(practice_amount(tx, p) for p in tx.ethical_practices)
            tx = tx.model_copy(update={"societal_debt": debt})
        refreshed.append(tx)

    return BatchSummary(
        transactions=refreshed,
        total_societal_debt=negative,
        debt_percentage=debt_percentage(transactions, settings),
        total_positive_impact=positive_impact(transactions),
        total_negative_impact=negative,
    )


def balance_score(positive: float, negative: float) -> int:
    """
    Percentage of negative impact offset by positive impact, rounded half up.

    With no meaningful negative impact the score is 100, or 101 when there is
    positive impact on top.
    """
    if negative <= IMPACT_EPSILON:
        return 101 if positive > IMPACT_EPSILON else 100
    return math.floor(positive / negative * 100 + 0.5)
