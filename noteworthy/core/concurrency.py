"""Per-key locking and cooperative cancellation for indexing tasks."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Hashable
from contextlib import asynccontextmanager
from typing import TypeVar

from noteworthy.core.errors import OperationCancelled, ReindexInProgress

T = TypeVar("T")


class CancellationToken:
    """Explicit cancellation signal threaded through a call chain."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled(self.reason or "Operation cancelled")


def check_cancelled(token: CancellationToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()


class KeyedLock:
    """One asyncio.Lock per key, dropped again once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Hashable, *, wait: bool = True) -> AsyncIterator[None]:
        """Hold the lock for ``key``.

        With ``wait=False`` a lock already held raises ReindexInProgress
        instead of queueing behind it.
        """
        if not wait and self.locked(key):
            raise ReindexInProgress(f"Reindex already in progress for {key}")

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)


async def run_to_completion(aw: Awaitable[T]) -> T:
    """Await ``aw`` even if the calling task is cancelled meanwhile.

    The cancellation is re-raised once the inner work has finished, so a
    storage transaction is never abandoned half-way.
    """
    task = asyncio.ensure_future(aw)
    cancelled = False
    while not task.done():
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.done() and task.cancelled():
                raise
            cancelled = True
    if cancelled:
        # surface the inner failure first, if any
        task.result()
        raise asyncio.CancelledError
    return task.result()
