import json
import os
from typing import Any

from openai import OpenAI
from pydantic import ValidationError as PydanticValidationError

from impact_ledger.core import settings
from impact_ledger.errors import UpstreamError
from impact_ledger.logger import get_logger
from impact_ledger.models import ClassificationResult, Transaction

from .base import Classifier
from .prompts import TRANSACTION_ANALYSIS_PROMPT

logger = get_logger(__name__)

# Response keys (camelCase, as the prompt asks for) -> ClassificationResult fields.
_RESPONSE_KEYS = {
    "unethicalPractices": "unethical_practices",
    "ethicalPractices": "ethical_practices",
    "practiceWeights": "practice_weights",
    "practiceCategories": "practice_categories",
    "practiceSearchTerms": "practice_search_terms",
    "information": "information",
    "citations": "citations",
}


class LLMClassifier(Classifier):
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.timeout = timeout if timeout is not None else settings.classifier_timeout()
        self.client = OpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url or os.getenv("OPENAI_BASE_URL") or None,
            timeout=self.timeout,
            max_retries=0,
        )
        self.model = model or settings.openai_model()

    def classify(self, transactions: list[Transaction]) -> list[ClassificationResult]:
        if not transactions:
            return []

        payload = json.dumps({
            "transactions": [
                {
                    "transactionId": tx.id,
                    "date": tx.date or "N/A",
                    "name": tx.name or "Unknown Merchant",
                    "amount": tx.amount,
                    "categories": tx.provider_categories,
                }
                for tx in transactions
            ]
        })

        logger.info("[CLASSIFY] Sending %d transactions to model %s", len(transactions), self.model)
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": TRANSACTION_ANALYSIS_PROMPT},
                    {"role": "user", "content": payload},
                ],
                response_format={"type": "json_object"},
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error("[CLASSIFY] LLM request failed: %s", e)
            raise UpstreamError(f"Classifier request failed: {e}") from e

        content = None
        if response.choices:
            content = response.choices[0].message.content
        if not content:
            raise UpstreamError("Classifier returned empty content")

        results = parse_classification_response(content)
        logger.info("[CLASSIFY] Model returned %d of %d results", len(results), len(transactions))
        return results


def extract_json_object(content: str) -> str:
    text = content.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]

    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        raise UpstreamError("Could not find a JSON object in classifier response")
    return text[first:last + 1]


def _coerce_citations(value: Any) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        return {}
    citations: dict[str, list[str]] = {}
    for practice, urls in value.items():
        if isinstance(urls, str):
            citations[practice] = [urls] if urls else []
        elif isinstance(urls, list):
            citations[practice] = [str(url) for url in urls if url]
    return citations


def parse_classification_response(content: str) -> list[ClassificationResult]:
    """
    Parse the model output into results. Items without a transaction id are
    dropped; a payload that is not a ``{"transactions": [...]}`` object, or an
    item that does not validate, fails the whole batch.
    """
    try:
        data = json.loads(extract_json_object(content))
    except json.JSONDecodeError as e:
        raise UpstreamError(f"Failed to parse classifier JSON: {e}") from e

    items = data.get("transactions") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise UpstreamError("Classifier response is missing the 'transactions' array")

    results: list[ClassificationResult] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        tx_id = item.get("transactionId") or item.get("matchingTransactionId")
        if not tx_id:
            logger.debug("[CLASSIFY] Dropping result without transactionId: %s", item.get("name"))
            continue

        fields: dict[str, Any] = {"matching_transaction_id": str(tx_id)}
        for key, field in _RESPONSE_KEYS.items():
            if item.get(key) is not None:
                fields[field] = item[key]
        fields["citations"] = _coerce_citations(item.get("citations"))

        try:
            results.append(ClassificationResult.model_validate(fields))
        except PydanticValidationError as e:
            raise UpstreamError(f"Malformed classifier result for {tx_id}: {e}") from e

    return results
