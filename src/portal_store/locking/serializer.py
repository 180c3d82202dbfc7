"""In-process per-key operation serializer.

``OperationSerializer.with_lock(key, operation)`` guarantees that at most
one operation per key runs at a time on the event loop.  Unrelated keys
proceed independently.

Each live holder is tracked as a ``LockEntry``.  A caller that finds an
entry for its key waits until that entry is released, then re-checks (so
several waiters never start together), registers its own entry and runs
the operation with exponential-backoff retries.

A watchdog timer evicts an entry that outlives ``watchdog_timeout``.
Eviction only frees the key for the next caller; it does not cancel the
running operation.  Entry removal and timer cancellation happen on every
exit path.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from portal_store.errors import OperationFailedError

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass
class LockEntry:
    """One live holder of a key."""

    key: str
    pending: asyncio.Task | None
    watchdog: asyncio.TimerHandle | None = None
    released: asyncio.Event = field(default_factory=asyncio.Event)


class OperationSerializer:
    """Serialize async operations per key.

    Args:
        max_retries: Default attempts per operation.
        retry_delay: Default base backoff in seconds.
        watchdog_timeout: Seconds after which a still-running holder is
            evicted from the lock table.
    """

    def __init__(
        self,
        max_retries: int = 5,
        retry_delay: float = 0.1,
        watchdog_timeout: float = 30.0,
    ) -> None:
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.watchdog_timeout = watchdog_timeout
        self._entries: dict[str, LockEntry] = {}

    def pending_keys(self) -> list[str]:
        """Keys that currently have a live holder."""
        return sorted(self._entries)

    def is_locked(self, key: str) -> bool:
        return key in self._entries

    async def with_lock(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> T:
        """Run *operation* as the only holder of *key*.

        Args:
            key: Resource key, e.g. a user id.
            operation: Zero-argument coroutine function.
            max_retries: Attempts before giving up (default from constructor).
            retry_delay: Base backoff; attempt *n* waits
                ``retry_delay * 2 ** (n - 1)`` before attempt *n + 1*.

        Returns:
            The operation's result.

        Raises:
            OperationFailedError: If every attempt raised.
        """
        attempts = max_retries if max_retries is not None else self.max_retries
        delay = retry_delay if retry_delay is not None else self.retry_delay

        while (holder := self._entries.get(key)) is not None:
            logger.debug("Waiting for existing operation on key: %s", key)
            await holder.released.wait()

        entry = LockEntry(key=key, pending=asyncio.current_task())
        self._entries[key] = entry
        entry.watchdog = asyncio.get_running_loop().call_later(
            self.watchdog_timeout, self._evict, entry
        )

        try:
            return await self._run_with_retry(key, operation, attempts, delay)
        finally:
            self._release(entry)

    async def _run_with_retry(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        attempts: int,
        delay: float,
    ) -> T:
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                logger.debug(
                    "Executing operation for key: %s (attempt %d/%d)",
                    key,
                    attempt,
                    attempts,
                )
                return await operation()
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Operation failed for key: %s (attempt %d/%d): %s",
                    key,
                    attempt,
                    attempts,
                    exc,
                )
                if attempt < attempts:
                    wait = delay * 2 ** (attempt - 1)
                    logger.debug(
                        "Waiting %.3fs before retry for key: %s", wait, key
                    )
                    await asyncio.sleep(wait)

        raise OperationFailedError(key, attempts, last_error) from last_error

    def _release(self, entry: LockEntry) -> None:
        if entry.watchdog is not None:
            entry.watchdog.cancel()
            entry.watchdog = None
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]
        entry.released.set()

    def _evict(self, entry: LockEntry) -> None:
        if self._entries.get(entry.key) is not entry:
            return
        logger.warning(
            "Operation timeout for key: %s, evicting lock entry after %.1fs",
            entry.key,
            self.watchdog_timeout,
        )
        entry.watchdog = None
        del self._entries[entry.key]
        entry.released.set()
