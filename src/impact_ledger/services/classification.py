import asyncio
from dataclasses import dataclass, field

from impact_ledger.classifiers.base import Classifier
from impact_ledger.domain.transactions import apply_classification, merge_transactions
from impact_ledger.domain.vendors import is_cacheable, normalize_vendor_name
from impact_ledger.errors import UpstreamError
from impact_ledger.integration.vendor_cache import VendorCache
from impact_ledger.logger import get_logger
from impact_ledger.models import CLASSIFICATION_FIELDS, Transaction, VendorAnalysis

logger = get_logger(__name__)


@dataclass
class Resolution:
    transactions: list[Transaction]
    cache_hits: int = 0
    cache_writes: list[str] = field(default_factory=list)
    unresolved_ids: list[str] = field(default_factory=list)
    error: UpstreamError | None = None


def vendor_key(tx: Transaction) -> str:
    return normalize_vendor_name(tx.merchant_name or tx.name)


class ClassificationResolver:
    """
    Fills in classification fields for a transaction batch: vendor cache
    first, then one batched classifier call for whatever the cache missed.
    Classified vendors are written back to the cache in the background.
    """

    def __init__(self, cache: VendorCache, classifier: Classifier):
        self.cache = cache
        self.classifier = classifier
        self._pending_writes: set[asyncio.Task] = set()

    async def _lookup(self, name: str) -> VendorAnalysis | None:
        try:
            entry = await self.cache.get(name)
        except Exception as e:
            logger.warning("[CACHE] Lookup failed for '%s': %s", name, e)
            return None
        if entry is not None and not entry.is_complete:
            logger.warning(
                "[CACHE] Entry for '%s' is missing original_name or analysis_source; ignoring it.",
                name,
            )
            return None
        return entry

    async def _resolve_from_cache(self, transactions: list[Transaction]) -> tuple[list[Transaction], int]:
        names = sorted({
            vendor_key(tx) for tx in transactions
            if not tx.analyzed and is_cacheable(vendor_key(tx))
        })
        if not names:
            return transactions, 0

        entries = await asyncio.gather(*(self._lookup(name) for name in names))
        hits = {name: entry for name, entry in zip(names, entries) if entry is not None}

        resolved: list[Transaction] = []
        hit_count = 0
        for tx in transactions:
            entry = None if tx.analyzed else hits.get(vendor_key(tx))
            if entry is not None:
                tx = apply_classification(tx, entry)
                hit_count += 1
            resolved.append(tx)

        logger.info("[CACHE] %d of %d vendors found in cache.", len(hits), len(names))
        return resolved, hit_count

    def _schedule_write(self, name: str, analysis: VendorAnalysis) -> None:
        task = asyncio.create_task(self.cache.put(name, analysis))
        self._pending_writes.add(task)
        task.add_done_callback(self._write_done)

    def _write_done(self, task: asyncio.Task) -> None:
        self._pending_writes.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("[CACHE] Background cache write failed: %s", error)

    async def wait_for_cache_writes(self) -> None:
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def resolve(
        self,
        incoming: list[Transaction],
        saved: list[Transaction] | None = None,
    ) -> Resolution:
        merged = merge_transactions(saved, incoming)
        transactions, hit_count = await self._resolve_from_cache(merged)

        misses = [tx for tx in transactions if not tx.analyzed]
        if not misses:
            return Resolution(transactions=transactions, cache_hits=hit_count)

        logger.info("[ANALYZE] Classifying %d transactions not found in cache.", len(misses))
        try:
            results = await asyncio.to_thread(self.classifier.classify, misses)
        except Exception as e:
            logger.error("[ANALYZE] Classifier failed: %s", e)
            error = e if isinstance(e, UpstreamError) else UpstreamError(f"Classifier failed: {e}")
            return Resolution(
                transactions=transactions,
                cache_hits=hit_count,
                unresolved_ids=[tx.id for tx in misses],
                error=error,
            )

        by_id = {result.matching_transaction_id: result for result in results}
        resolved: list[Transaction] = []
        writes: dict[str, VendorAnalysis] = {}
        for tx in transactions:
            result = None if tx.analyzed else by_id.get(tx.id)
            if result is not None:
                tx = apply_classification(tx, result)
                name = vendor_key(tx)
                if is_cacheable(name) and name not in writes:
                    writes[name] = VendorAnalysis(
                        original_name=tx.merchant_name or tx.name,
                        analysis_source="openai",
                        **{f: getattr(result, f) for f in CLASSIFICATION_FIELDS},
                    )
            resolved.append(tx)

        for name, analysis in writes.items():
            self._schedule_write(name, analysis)

        unresolved = [tx.id for tx in resolved if not tx.analyzed]
        if unresolved:
            logger.warning("[ANALYZE] Classifier returned no result for %d transactions.", len(unresolved))

        return Resolution(
            transactions=resolved,
            cache_hits=hit_count,
            cache_writes=list(writes),
            unresolved_ids=unresolved,
        )
