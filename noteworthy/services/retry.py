"""Retry / timeout policy composed around any embedding provider."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from noteworthy.core.config import get_settings
from noteworthy.core.errors import ProviderRateLimited, ProviderUnavailable
from noteworthy.services.embedding import EmbeddingProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (ProviderRateLimited, ProviderUnavailable)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Embedding call failed (attempt %d): %s, retrying",
        retry_state.attempt_number,
        exc,
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for transient provider failures.

    Only rate limiting and unavailability are retried; auth and malformed
    responses surface on the first attempt. Each attempt is bounded by
    ``attempt_timeout`` seconds.
    """
    max_attempts: int = 3
    initial_wait: float = 0.5
    max_wait: float = 8.0
    attempt_timeout: float | None = 30.0

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        settings = get_settings()
        return cls(
            max_attempts=settings.embedding_max_attempts,
            initial_wait=settings.embedding_backoff_initial,
            max_wait=settings.embedding_backoff_max,
            attempt_timeout=settings.embedding_timeout_seconds,
        )

    async def _attempt(self, fn: Callable[..., Awaitable[T]], *args) -> T:
        if self.attempt_timeout is None:
            return await fn(*args)
        try:
            return await asyncio.wait_for(fn(*args), timeout=self.attempt_timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderUnavailable(
                f"Embedding call exceeded {self.attempt_timeout}s"
            ) from exc

    def _wait(self) -> Callable[[RetryCallState], float]:
        backoff = wait_exponential_jitter(
            initial=self.initial_wait,
            max=self.max_wait,
            jitter=self.initial_wait,
        )

        def wait(retry_state: RetryCallState) -> float:
            delay = backoff(retry_state)
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            # Honour Retry-After, still capped by max_wait
            if isinstance(exc, ProviderRateLimited) and exc.retry_after:
                delay = max(delay, min(exc.retry_after, self.max_wait))
            return delay

        return wait

    async def call(self, fn: Callable[..., Awaitable[T]], *args) -> T:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._attempt(fn, *args)
        raise AssertionError("unreachable")  # pragma: no cover


class RetryingEmbeddingProvider(EmbeddingProvider):
    """Applies a RetryPolicy to every sub-batch request of ``inner``."""

    def __init__(self, inner: EmbeddingProvider, policy: RetryPolicy | None = None) -> None:
        super().__init__(inner.model)
        self.inner = inner
        self.policy = policy or RetryPolicy.from_settings()
        self.max_batch_size = inner.max_batch_size

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        return await self.policy.call(self.inner._embed_batch, texts)


def with_retries(
    provider: EmbeddingProvider,
    policy: RetryPolicy | None = None,
) -> EmbeddingProvider:
    return RetryingEmbeddingProvider(provider, policy)
