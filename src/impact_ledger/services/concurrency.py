from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from impact_ledger.errors import ConcurrencyRejection
from impact_ledger.logger import get_logger

logger = get_logger(__name__)


class SingleFlight:
    """
    Per-key guard that rejects, rather than queues, a second caller while the
    first is still running.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self._active: set[str] = set()

    def is_active(self, key: str) -> bool:
        return key in self._active

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        # Check-and-add has no await in between, so it is atomic on the loop.
        if key in self._active:
            logger.info("[%s] Rejected concurrent request for %s.", self.operation.upper(), key)
            raise ConcurrencyRejection(self.operation, key)
        self._active.add(key)
        try:
            yield
        finally:
            self._active.discard(key)
