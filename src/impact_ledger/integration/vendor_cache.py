import asyncio
import json
import os
from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from pydantic import ValidationError as PydanticValidationError

from impact_ledger.core import settings
from impact_ledger.domain.vendors import is_cacheable
from impact_ledger.errors import PersistenceError
from impact_ledger.logger import get_logger
from impact_ledger.models import VendorAnalysis

logger = get_logger(__name__)


class VendorCache(ABC):
    @abstractmethod
    async def get(self, normalized_name: str) -> VendorAnalysis | None:
        """Return the cached analysis for a normalized vendor name, or None."""
        pass

    @abstractmethod
    async def put(self, normalized_name: str, analysis: VendorAnalysis) -> None:
        pass


class JsonVendorCache(VendorCache):
    """
    Vendor analyses kept in a single JSON document keyed by normalized
    vendor name. Entries older than ``validity_days`` read as absent.
    """

    def __init__(self, data_path: str = "vendor_cache.json", validity_days: int | None = None):
        self.data_path = data_path
        self.validity = timedelta(
            days=validity_days if validity_days is not None else settings.vendor_cache_validity_days()
        )
        self.entries: dict[str, dict] = {}
        self._lock = asyncio.Lock()
        self.load()

    def load(self) -> None:
        if not os.path.exists(self.data_path):
            return
        try:
            with open(self.data_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("[CACHE] %s is not valid JSON, starting with an empty cache.", self.data_path)
            data = {}
        self.entries = data if isinstance(data, dict) else {}

    def save(self) -> None:
        try:
            with open(self.data_path, "w", encoding="utf-8") as f:
                json.dump(self.entries, f, indent=2)
        except OSError as e:
            raise PersistenceError(f"Could not write vendor cache {self.data_path}: {e}") from e

    def is_expired(self, analysis: VendorAnalysis, now: datetime | None = None) -> bool:
        if analysis.analyzed_at is None:
            return True
        return (now or datetime.now()) - analysis.analyzed_at > self.validity

    async def get(self, normalized_name: str) -> VendorAnalysis | None:
        if not is_cacheable(normalized_name):
            return None

        raw = self.entries.get(normalized_name)
        if raw is None:
            return None

        try:
            analysis = VendorAnalysis.model_validate(raw)
        except PydanticValidationError as e:
            logger.warning("[CACHE] Unreadable entry for '%s': %s", normalized_name, e)
            return None

        if self.is_expired(analysis):
            logger.debug("[CACHE] Entry for '%s' expired (analyzed %s).", normalized_name, analysis.analyzed_at)
            return None
        return analysis

    async def put(self, normalized_name: str, analysis: VendorAnalysis) -> None:
        if not is_cacheable(normalized_name):
            logger.debug("[CACHE] Refusing to cache sentinel vendor name.")
            return
        if not analysis.is_complete:
            logger.warning(
                "[CACHE] Refusing incomplete entry for '%s' (original_name=%r, analysis_source=%r).",
                normalized_name,
                analysis.original_name,
                analysis.analysis_source,
            )
            return

        stamped = analysis.model_copy(update={"analyzed_at": datetime.now()})
        async with self._lock:
            self.entries[normalized_name] = stamped.model_dump(mode="json")
            await asyncio.to_thread(self.save)
        logger.debug("[CACHE] Stored analysis for '%s'.", normalized_name)
