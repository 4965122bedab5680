"""
Error taxonomy for the PnL pipeline.

Fatal conditions are exceptions; PartialDataWarning is a plain value that
rides along on the summary because partial history is still usable.
"""

from dataclasses import dataclass


class PnlError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PnlError):
    """No usable credential for any activity provider of the chain."""


class TransportError(PnlError):
    """Network-level failure (timeout, connection reset, bad JSON)."""


class RateLimited(PnlError):
    """Provider still answered 429 after the bounded retry."""


class ProviderUnavailable(PnlError):
    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class NoDataError(PnlError):
    """Every provider in the fallback chain failed."""

    def __init__(self, failures: list[ProviderUnavailable]):
        detail = "; ".join(str(f) for f in failures) or "no providers configured"
        super().__init__(f"All activity providers failed: {detail}")
        self.failures = failures


class ClassificationAmbiguity(PnlError):
    """Transfer can't be confidently classified; dropped by the caller."""


@dataclass
class PartialDataWarning:
    provider: str
    pages_fetched: int
    reason: str

    def message(self) -> str:
        return f"{self.provider}: stopped after {self.pages_fetched} page(s) ({self.reason}); history may be incomplete"
