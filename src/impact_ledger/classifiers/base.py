from abc import ABC, abstractmethod

from impact_ledger.models import ClassificationResult, Transaction


class Classifier(ABC):
    @abstractmethod
    def classify(self, transactions: list[Transaction]) -> list[ClassificationResult]:
        """
        Classify a batch of transactions in a single request.

        May return a subset, in any order; results are matched back by
        ``matching_transaction_id``. Raises UpstreamError on failure.
        """
        pass
