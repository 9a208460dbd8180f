"""Typed errors raised by the indexing and retrieval engine.

Each error carries the HTTP status the API layer answers with, so routes can
let them propagate to the single handler registered in ``noteworthy.main``.
"""

from __future__ import annotations


class NoteworthyError(Exception):
    """Base class for every engine error."""

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ConfigurationMissing(NoteworthyError):
    """The principal has no usable embedding configuration."""

    status_code = 409


class DocumentNotFound(NoteworthyError):
    status_code = 404


class InvalidDimension(NoteworthyError):
    """A returned embedding does not have the configured width."""

    status_code = 502

    def __init__(self, expected: int, actual: int, message: str = "") -> None:
        super().__init__(message or f"Expected embeddings of dimension {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class ReindexInProgress(NoteworthyError):
    """Raised when a reindex is requested with ``wait=False`` while one is running."""

    status_code = 409


class OperationCancelled(NoteworthyError):
    status_code = 499


# ── Provider errors ──────────────────────────────────────────


class ProviderError(NoteworthyError):
    """An embedding backend call failed."""

    status_code = 502
    transient = False

    def __init__(self, message: str = "", provider_status: int | None = None) -> None:
        super().__init__(message)
        self.provider_status = provider_status


class ProviderAuthError(ProviderError):
    """Missing or rejected credentials (401/403). Never retried."""


class ProviderResponseError(ProviderError):
    """Malformed response or a non-retryable client error."""


class ProviderRateLimited(ProviderError):
    status_code = 503
    transient = True

    def __init__(
        self,
        message: str = "",
        provider_status: int | None = 429,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, provider_status)
        self.retry_after = retry_after


class ProviderUnavailable(ProviderError):
    """5xx, timeout or network failure."""

    status_code = 503
    transient = True
