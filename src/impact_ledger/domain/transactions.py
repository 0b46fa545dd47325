from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

from impact_ledger.models import CLASSIFICATION_FIELDS, Transaction


def parse_date(value: str | None) -> datetime:
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            return datetime.min
    return datetime.min


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def map_bank_transaction(raw: dict[str, Any]) -> Transaction:
    """Map one bank-provider record (Plaid-shaped) to a spend Transaction."""
    merchant_name = raw.get("merchant_name") or None
    name = merchant_name or raw.get("name") or "Unknown Merchant"
    tx_date = raw.get("date") or date.today().isoformat()
    categories = raw.get("category") or []

    return Transaction(
        date=str(tx_date),
        name=str(name),
        merchant_name=merchant_name,
        amount=abs(_as_float(raw.get("amount"))),
        provider_transaction_id=raw.get("transaction_id") or None,
        provider_categories=[str(c) for c in categories] if isinstance(categories, list) else [],
    )


def map_bank_transactions(raw_transactions: Any) -> list[Transaction]:
    if not isinstance(raw_transactions, list):
        return []
    return deduplicate_transactions(
        map_bank_transaction(raw) for raw in raw_transactions if isinstance(raw, dict)
    )


def sort_newest_first(transactions: Iterable[Transaction]) -> list[Transaction]:
    return sorted(transactions, key=lambda tx: parse_date(tx.date), reverse=True)


def merge_transactions(
    existing: Iterable[Transaction] | None,
    incoming: Iterable[Transaction] | None,
) -> list[Transaction]:
    """
    Merge two transaction lists by id. An analyzed entry is never replaced by
    an unanalyzed one; otherwise the incoming entry wins.
    """
    merged: dict[str, Transaction] = {}

    for tx in existing or []:
        current = merged.get(tx.id)
        if current is None or (not current.analyzed and tx.analyzed):
            merged[tx.id] = tx

    for tx in incoming or []:
        current = merged.get(tx.id)
        if current is None or tx.analyzed or not current.analyzed:
            merged[tx.id] = tx

    return sort_newest_first(merged.values())


def deduplicate_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    seen = set()
    result: list[Transaction] = []
    for tx in transactions:
        if tx.id not in seen:
            seen.add(tx.id)
            result.append(tx)
    return result


def apply_classification(tx: Transaction, source: Any) -> Transaction:
    """Copy classification fields from a result or cache entry and mark analyzed."""
    update: dict[str, Any] = {"analyzed": True}
    for field in CLASSIFICATION_FIELDS:
        value = getattr(source, field, None)
        if value is not None:
            update[field] = value
    return tx.model_copy(update=update, deep=True)
