"""
Credit application: consumes positive-impact transactions against a requested
offset amount. A transaction id enters ``credit_transaction_ids`` at most once,
ever, so replaying a request finds less (or no) credit.
"""
import math
from collections.abc import Iterable
from datetime import datetime
from typing import Literal

from impact_ledger.domain.impact import transaction_positive_impact
from impact_ledger.errors import ValidationError
from impact_ledger.logger import get_logger
from impact_ledger.models import CreditApplication, CreditState, ImpactAnalysis, Transaction

logger = get_logger(__name__)

CreditPhase = Literal["no-credit", "credit-available", "credit-partially-applied"]


def new_credit_state(user_id: str) -> CreditState:
    return CreditState(user_id=user_id)


def ensure_unique_ids(ids: Iterable[str]) -> list[str]:
    unique: list[str] = []
    seen = set()
    for tx_id in ids:
        if tx_id and tx_id not in seen:
            unique.append(tx_id)
            seen.add(tx_id)
    return unique


def credit_phase(state: CreditState, analysis: ImpactAnalysis) -> CreditPhase:
    if state.applied_credit > 0:
        return "credit-partially-applied"
    if analysis.available_credit > 0:
        return "credit-available"
    return "no-credit"


def transaction_credit(tx: Transaction) -> float:
    if tx.is_credit_application:
        return 0.0
    return transaction_positive_impact(tx)


def apply_credit(
    state: CreditState,
    transactions: list[Transaction],
    requested_amount: float,
    now: datetime | None = None,
) -> CreditApplication:
    """
    Walk ``transactions`` in order, consuming whole unused positive-impact
    transactions until the remainder of ``requested_amount`` is <= 0.

    A transaction is consumed whole even when it is larger than the
    remainder, so the applied amount can exceed the request; the overshoot
    is applied as well and reported as a negative ``shortfall``.
    """
    if requested_amount is None or not math.isfinite(requested_amount) or requested_amount <= 0:
        raise ValidationError(f"Credit amount must be positive, got {requested_amount!r}")
    if not transactions:
        raise ValidationError("No transactions available to apply credit from")

    used = set(state.credit_transaction_ids)
    consumed_ids: list[str] = []
    consumed_amount = 0.0
    remainder = requested_amount

    for tx in transactions:
        if remainder <= 0:
            break
        if not tx.id or tx.id in used or tx.credit_applied:
            continue
        credit = transaction_credit(tx)
        if credit <= 0:
            continue
        used.add(tx.id)
        consumed_ids.append(tx.id)
        consumed_amount += credit
        remainder -= credit

    amount_applied = consumed_amount
    shortfall = requested_amount - consumed_amount

    if shortfall > 0:
        logger.warning(
            "[CREDIT] Could only find %.2f of %.2f credit for user %s.",
            consumed_amount,
            requested_amount,
            state.user_id,
        )
    elif shortfall < 0:
        logger.info(
            "[CREDIT] Consumed %.2f to cover %.2f for user %s (overshoot %.2f).",
            consumed_amount,
            requested_amount,
            state.user_id,
            -shortfall,
        )

    if not consumed_ids:
        return CreditApplication(
            state=state,
            amount_applied=0.0,
            consumed_amount=0.0,
            shortfall=requested_amount,
        )

    new_state = state.model_copy(update={
        "applied_credit": state.applied_credit + amount_applied,
        "last_applied_amount": amount_applied,
        "last_applied_at": now or datetime.now(),
        "credit_transaction_ids": [*state.credit_transaction_ids, *consumed_ids],
    })
    return CreditApplication(
        state=new_state,
        amount_applied=amount_applied,
        consumed_amount=consumed_amount,
        shortfall=shortfall,
        consumed_ids=consumed_ids,
    )


def refresh_available_credit(state: CreditState, analysis: ImpactAnalysis) -> CreditState:
    return state.model_copy(update={"available_credit": analysis.available_credit})
