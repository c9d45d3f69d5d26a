"""
Shared error types for core services.
"""

from typing import Optional


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class ProviderError(RuntimeError):
    """Base class for failures of an external capability."""


class EmbeddingProviderError(ProviderError):
    """Raised when the embedding provider is unavailable."""


class InvalidEmbedding(EmbeddingProviderError):
    """Raised when a provider returns a malformed or non-finite vector."""


class ProviderTransportError(ProviderError):
    """Raised when an external capability answers with a non-success response."""

    def __init__(self, message: str, status_code: Optional[int] = None, provider: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class UnconfiguredCapability(RuntimeError):
    """Raised when an operation needs an optional capability that is not configured."""

    def __init__(self, capability: str):
        super().__init__(f"{capability} is not configured")
        self.capability = capability


class ExtractionParseError(ValueError):
    """Raised when an extraction response is not a list of memory-shaped records."""
