import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from impact_ledger.api.routes import credit, impact, transactions, values
from impact_ledger.classifiers.base import Classifier
from impact_ledger.classifiers.llm import LLMClassifier
from impact_ledger.core import settings
from impact_ledger.errors import (
    ConcurrencyRejection,
    ImpactLedgerError,
    PersistenceError,
    UpstreamError,
    ValidationError,
)
from impact_ledger.integration.repository import JsonRepository
from impact_ledger.integration.vendor_cache import JsonVendorCache
from impact_ledger.logger import get_logger, setup_logging
from impact_ledger.manager import LedgerManager
from impact_ledger.models import ClassificationResult, Transaction
from impact_ledger.services.classification import ClassificationResolver

logger = get_logger(__name__)

ERROR_STATUS: dict[type[ImpactLedgerError], int] = {
    ValidationError: 422,
    ConcurrencyRejection: 409,
    UpstreamError: 502,
    PersistenceError: 503,
}


class DisabledClassifier(Classifier):
    def classify(self, transactions: list[Transaction]) -> list[ClassificationResult]:
        raise UpstreamError("No classifier configured (OPENAI_API_KEY not set)")


def build_classifier() -> Classifier:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        logger.warning("OPENAI_API_KEY not set. Uncached vendors cannot be classified.")
        return DisabledClassifier()

    classifier = LLMClassifier(api_key=api_key)
    logger.info(
        "LLM classifier enabled: model=%s, base_url=%s, timeout=%ss",
        classifier.model,
        os.getenv("OPENAI_BASE_URL") or "default",
        classifier.timeout,
    )
    return classifier


async def handle_ledger_error(request: Request, exc: ImpactLedgerError) -> JSONResponse:
    status_code = 500
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app(manager: LedgerManager | None = None) -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if manager is not None:
            app.state.manager = manager
            yield
            return

        logger.info("Initializing services...")
        settings.log_environment()

        cache = JsonVendorCache(data_path=os.path.join(settings.DATA_DIR, "vendor_cache.json"))
        resolver = ClassificationResolver(cache=cache, classifier=build_classifier())
        app.state.manager = LedgerManager(
            repository=JsonRepository(data_dir=settings.DATA_DIR),
            resolver=resolver,
        )

        logger.info("Services initialized.")
        yield
        await resolver.wait_for_cache_writes()
        logger.info("Service shutting down.")

    app = FastAPI(title="Impact Ledger", lifespan=lifespan)
    app.add_exception_handler(ImpactLedgerError, handle_ledger_error)

    app.include_router(values.router)
    app.include_router(impact.router)
    app.include_router(credit.router)
    app.include_router(transactions.router)

    return app


app = create_app()
