"""Cross-process lock built on exclusive marker files.

Holding the lock for ``path`` means having created ``path + ".lock"`` with
an exclusive-create call.  The marker is always removed after the
operation, whether it succeeded or raised.  A failure to remove it is
logged and not re-raised; the left-over marker then blocks other holders
until it is deleted by hand or reclaimed as stale.

Stale reclaiming is off unless ``stale_after`` is set: a marker whose
modification time is older than that many seconds is deleted and the
acquisition is retried immediately.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import time
from typing import Awaitable, Callable, TypeVar

from portal_store.core.async_utils import run_sync
from portal_store.errors import LockNotAcquiredError
from portal_store.storage.base import Storage

T = TypeVar("T")
logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"


class FileLock:
    """Marker-file lock on one store.

    Args:
        storage: Store the locked documents (and markers) live in.
        max_retries: Default acquisition attempts.
        base_delay: Wait after attempt *n* is ``base_delay * n`` seconds.
        stale_after: Reclaim markers older than this many seconds
            (``None`` disables reclaiming).
    """

    def __init__(
        self,
        storage: Storage,
        max_retries: int = 3,
        base_delay: float = 0.1,
        stale_after: float | None = None,
    ) -> None:
        self.storage = storage
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.stale_after = stale_after

    @staticmethod
    def marker_path(path: str) -> str:
        return f"{path}{LOCK_SUFFIX}"

    async def run(
        self,
        path: str,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
    ) -> T:
        """Run *operation* while holding the marker for *path*.

        Raises:
            LockNotAcquiredError: If the marker already existed on every
                attempt.
        """
        attempts = max_retries if max_retries is not None else self.max_retries
        marker = self.marker_path(path)
        parent = posixpath.dirname(marker)
        if parent:
            await run_sync(self.storage.make_dirs, parent)

        attempt = 1
        while True:
            try:
                await run_sync(self.storage.create_exclusive, marker)
                break
            except FileExistsError:
                if await self._reclaim_if_stale(marker):
                    continue
                if attempt >= attempts:
                    raise LockNotAcquiredError(path, attempts) from None
                wait = self.base_delay * attempt
                logger.debug(
                    "File locked, waiting %.2fs before retry (attempt %d/%d): %s",
                    wait,
                    attempt,
                    attempts,
                    marker,
                )
                await asyncio.sleep(wait)
                attempt += 1

        logger.debug("Acquired file lock: %s", marker)
        try:
            return await operation()
        finally:
            try:
                await run_sync(self.storage.remove_file, marker)
                logger.debug("Released file lock: %s", marker)
            except OSError as exc:
                logger.warning("Failed to remove lock file %s: %s", marker, exc)

    async def _reclaim_if_stale(self, marker: str) -> bool:
        """Delete *marker* if it is older than ``stale_after``."""
        if self.stale_after is None:
            return False
        try:
            stat = await run_sync(self.storage.stat, marker)
        except FileNotFoundError:
            # Released between our create attempt and the stat.
            return True
        age = time.time() - stat.mtime
        if age <= self.stale_after:
            return False
        logger.warning(
            "Reclaiming stale lock %s (age %.0fs > %.0fs)",
            marker,
            age,
            self.stale_after,
        )
        try:
            await run_sync(self.storage.remove_file, marker)
        except FileNotFoundError:
            pass
        return True
