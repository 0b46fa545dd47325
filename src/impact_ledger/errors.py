"""Exceptions raised by the impact ledger."""


class ImpactLedgerError(Exception):
    """Base exception for impact ledger errors"""
    pass


class ValidationError(ImpactLedgerError):
    """Invalid caller input (category id, level, order, credit amount)"""
    pass


class UpstreamError(ImpactLedgerError):
    """Classifier call failed or returned malformed data"""
    pass


class ConcurrencyRejection(ImpactLedgerError):
    """An operation for the same user is already in flight"""

    def __init__(self, operation: str, key: str):
        super().__init__(f"{operation} already in progress for {key}")
        self.operation = operation
        self.key = key


class PersistenceError(ImpactLedgerError):
    """Loading or saving user state failed"""
    pass


class ConfigurationError(ImpactLedgerError):
    """Configuration loading errors"""
    pass
