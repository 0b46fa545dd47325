import asyncio
from datetime import datetime
from typing import Any

from impact_ledger.classifiers.base import Classifier
from impact_ledger.domain import credit as credit_engine
from impact_ledger.domain import values as value_model
from impact_ledger.domain.impact import (
    balance_score,
    impact_analysis,
    practice_impacts,
    summarize_batch,
    top_negative_categories,
    top_positive_categories,
)
from impact_ledger.domain.transactions import map_bank_transactions
from impact_ledger.integration.repository import Repository
from impact_ledger.integration.vendor_cache import VendorCache
from impact_ledger.logger import get_logger
from impact_ledger.models import (
    AnalysisReport,
    CreditApplication,
    CreditOverview,
    CreditState,
    ImpactAnalysis,
    ImpactReport,
    Transaction,
    UserLedger,
    UserValueSettings,
    ValueStats,
)
from impact_ledger.services.classification import ClassificationResolver, Resolution
from impact_ledger.services.concurrency import SingleFlight

logger = get_logger(__name__)


def compute_impact(
    transactions: list[Transaction] | None,
    settings: UserValueSettings | None = None,
    applied_credit: float = 0.0,
) -> ImpactAnalysis:
    return impact_analysis(transactions, applied_credit=applied_credit, settings=settings)


def update_value_level(
    settings: UserValueSettings,
    category_id: str,
    new_level: int,
) -> UserValueSettings:
    return value_model.update_level(settings, category_id, new_level)


def reorder_categories(settings: UserValueSettings, new_order: list[str]) -> UserValueSettings:
    return value_model.reorder(settings, new_order)


def apply_credit(
    state: CreditState,
    transactions: list[Transaction],
    amount: float,
) -> CreditApplication:
    return credit_engine.apply_credit(state, transactions, amount)


async def resolve_classification(
    transactions: list[Transaction],
    cache: VendorCache,
    classifier: Classifier,
) -> Resolution:
    return await ClassificationResolver(cache, classifier).resolve(transactions)


class LedgerManager:
    """
    Owns per-user ledgers: value settings, credit state and the analysed
    transaction batch. Snapshots are replaced whole after the change has been
    persisted, so readers never see a half-applied update.
    """

    def __init__(self, repository: Repository, resolver: ClassificationResolver):
        self.repository = repository
        self.resolver = resolver
        self.analysis_guard = SingleFlight("analyze")
        self.credit_guard = SingleFlight("credit")
        self._ledgers: dict[str, UserLedger] = {}
        self._settings_locks: dict[str, asyncio.Lock] = {}

    async def _load_ledger(self, user_id: str) -> UserLedger:
        settings, state, batch = await asyncio.gather(
            self.repository.load_value_settings(user_id),
            self.repository.load_credit_state(user_id),
            self.repository.load_transaction_batch(user_id),
        )
        if state is None:
            state = credit_engine.new_credit_state(user_id)
        else:
            state = state.model_copy(update={
                "credit_transaction_ids": credit_engine.ensure_unique_ids(state.credit_transaction_ids),
            })
        return UserLedger(
            user_id=user_id,
            settings=settings or value_model.default_settings(),
            credit=state,
            transactions=batch.transactions if batch else [],
        )

    async def ledger(self, user_id: str) -> UserLedger:
        if user_id not in self._ledgers:
            loaded = await self._load_ledger(user_id)
            # Another request may have loaded and updated it meanwhile.
            self._ledgers.setdefault(user_id, loaded)
        return self._ledgers[user_id]

    def _replace(self, user_id: str, **fields: Any) -> UserLedger:
        ledger = self._ledgers[user_id].model_copy(update=fields)
        self._ledgers[user_id] = ledger
        return ledger

    def _settings_lock(self, user_id: str) -> asyncio.Lock:
        return self._settings_locks.setdefault(user_id, asyncio.Lock())

    # Value settings

    async def get_settings(self, user_id: str) -> UserValueSettings:
        return (await self.ledger(user_id)).settings

    async def _change_settings(self, user_id: str, change) -> UserValueSettings:
        async with self._settings_lock(user_id):
            current = (await self.ledger(user_id)).settings
            updated = change(current)
            if updated == current:
                return current
            await self.repository.save_value_settings(user_id, updated)
            self._replace(user_id, settings=updated)
            return updated

    async def update_value_level(self, user_id: str, category_id: str, new_level: int) -> UserValueSettings:
        updated = await self._change_settings(
            user_id, lambda s: value_model.update_level(s, category_id, new_level)
        )
        logger.info("[VALUES] %s set %s to %s (%s).", user_id, category_id, new_level, updated.values_hash)
        return updated

    async def reorder_categories(self, user_id: str, new_order: list[str]) -> UserValueSettings:
        updated = await self._change_settings(user_id, lambda s: value_model.reorder(s, new_order))
        logger.info("[VALUES] %s reordered categories: %s", user_id, ", ".join(updated.order))
        return updated

    async def reset_values(self, user_id: str) -> UserValueSettings:
        updated = await self._change_settings(user_id, lambda s: value_model.reset_to_default())
        logger.info("[VALUES] %s reset values to default.", user_id)
        return updated

    async def commit_values(self, user_id: str, now: datetime | None = None) -> UserValueSettings:
        updated = await self._change_settings(
            user_id, lambda s: value_model.commit(s, now or datetime.now())
        )
        logger.info("[VALUES] %s committed values until %s.", user_id, updated.committed_until)
        return updated

    async def value_stats(
        self,
        user_id: str,
        calculate_rank: bool = False,
        now: datetime | None = None,
    ) -> ValueStats:
        """
        Count stored users sharing this user's allocation. With
        ``calculate_rank`` only users whose commitment is still running count,
        ranked by the balance score of their latest saved batch.
        """
        settings = await self.get_settings(user_id)
        now = now or datetime.now()
        stored = await self.repository.list_value_settings()
        matching = [
            other_id for other_id, other in stored.items()
            if other.values_hash == settings.values_hash
            and (not calculate_rank or value_model.is_committed(other, now))
        ]
        stats = ValueStats(values_hash=settings.values_hash, matching_users=len(matching))
        if not calculate_rank or not matching:
            return stats

        batches = await asyncio.gather(*(self.repository.load_transaction_batch(uid) for uid in matching))
        scores = {
            uid: balance_score(batch.total_positive_impact, batch.total_negative_impact) if batch else 0
            for uid, batch in zip(matching, batches)
        }
        ranked = sorted(matching, key=lambda uid: (-scores[uid], uid))
        stats.total_in_rank = len(ranked)
        if user_id in scores:
            stats.rank = ranked.index(user_id) + 1
        logger.info(
            "[VALUES] %s shares %s with %d users; rank %s of %s.",
            user_id,
            settings.values_hash,
            len(matching),
            stats.rank,
            stats.total_in_rank,
        )
        return stats

    # Impact

    async def compute_impact(self, user_id: str, limit: int = 5) -> ImpactReport:
        ledger = await self.ledger(user_id)
        analysis = compute_impact(ledger.transactions, ledger.settings, ledger.credit.applied_credit)
        practices = sorted(
            practice_impacts(ledger.transactions).values(),
            key=lambda p: p.amount,
            reverse=True,
        )
        return ImpactReport(
            analysis=analysis,
            analyzing=self.analysis_guard.is_active(user_id),
            top_negative_categories=top_negative_categories(ledger.transactions, ledger.settings, limit),
            top_positive_categories=top_positive_categories(ledger.transactions, limit),
            practices=practices,
        )

    # Credit

    async def get_credit(self, user_id: str) -> CreditOverview:
        ledger = await self.ledger(user_id)
        analysis = compute_impact(ledger.transactions, ledger.settings, ledger.credit.applied_credit)
        state = credit_engine.refresh_available_credit(ledger.credit, analysis)
        return CreditOverview(
            state=state,
            phase=credit_engine.credit_phase(state, analysis),
            applying=self.credit_guard.is_active(user_id),
        )

    async def apply_credit(self, user_id: str, amount: float) -> CreditApplication:
        async with self.credit_guard.acquire(user_id):
            ledger = await self.ledger(user_id)
            application = credit_engine.apply_credit(ledger.credit, ledger.transactions, amount)
            if not application.consumed_ids:
                return application

            analysis = compute_impact(
                ledger.transactions, ledger.settings, application.state.applied_credit
            )
            state = credit_engine.refresh_available_credit(application.state, analysis)
            await self.repository.save_credit_state(state)
            self._replace(user_id, credit=state)
            logger.info(
                "[CREDIT] %s applied %.2f from %d transactions; %.2f still available.",
                user_id,
                application.amount_applied,
                len(application.consumed_ids),
                state.available_credit,
            )
            return application.model_copy(update={"state": state})

    # Transactions

    async def get_transactions(self, user_id: str) -> list[Transaction]:
        return (await self.ledger(user_id)).transactions

    async def analyze_transactions(
        self,
        user_id: str,
        raw_transactions: list[dict[str, Any]],
    ) -> AnalysisReport:
        async with self.analysis_guard.acquire(user_id):
            ledger = await self.ledger(user_id)
            incoming = map_bank_transactions(raw_transactions)
            logger.info(
                "[ANALYZE] %s: %d incoming, %d saved transactions.",
                user_id,
                len(incoming),
                len(ledger.transactions),
            )

            resolution = await self.resolver.resolve(incoming, ledger.transactions)
            if resolution.error is not None:
                # Keep what the cache resolved for this session, but do not persist a partial batch.
                self._replace(user_id, transactions=resolution.transactions)
                raise resolution.error

            current_settings = self._ledgers[user_id].settings
            batch = summarize_batch(resolution.transactions, current_settings)
            await self.repository.save_transaction_batch(user_id, batch)
            self._replace(user_id, transactions=batch.transactions)

            logger.info(
                "[ANALYZE] %s: %d transactions, debt %.2f (%.1f%%), %d unresolved.",
                user_id,
                len(batch.transactions),
                batch.total_societal_debt,
                batch.debt_percentage,
                len(resolution.unresolved_ids),
            )
            return AnalysisReport(
                batch=batch,
                cache_hits=resolution.cache_hits,
                cache_writes=resolution.cache_writes,
                unresolved_ids=resolution.unresolved_ids,
            )
