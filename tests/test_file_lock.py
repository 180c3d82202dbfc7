"""Tests for the marker-file FileLock."""

from __future__ import annotations

import asyncio
import os
import time

import pytest

from portal_store.errors import LockNotAcquiredError
from portal_store.locking.file_lock import FileLock

DOC = "users/u1/notifications/notifications.json"
MARKER = f"{DOC}.lock"


class TestFileLock:
    """Acquire, release and retry behaviour."""

    async def test_marker_exists_only_during_operation(self, primary):
        lock = FileLock(primary)
        seen = []

        async def op():
            seen.append(primary.exists(MARKER))
            return "ok"

        assert await lock.run(DOC, op) == "ok"
        assert seen == [True]
        assert not primary.exists(MARKER)

    async def test_marker_removed_when_operation_raises(self, primary):
        lock = FileLock(primary)

        async def op():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await lock.run(DOC, op)
        assert not primary.exists(MARKER)

    async def test_creates_parent_directories(self, primary):
        lock = FileLock(primary)
        await lock.run(DOC, lambda: asyncio.sleep(0))
        assert primary.exists("users/u1/notifications")

    async def test_exhaustion_raises(self, primary):
        primary.put(MARKER, "")
        lock = FileLock(primary, max_retries=3, base_delay=0.001)
        with pytest.raises(LockNotAcquiredError) as excinfo:
            await lock.run(DOC, lambda: asyncio.sleep(0))
        assert excinfo.value.attempts == 3
        assert excinfo.value.path == DOC
        # Someone else's marker is left alone.
        assert primary.exists(MARKER)

    async def test_linear_backoff(self, primary, monkeypatch):
        primary.put(MARKER, "")
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        monkeypatch.setattr(
            "portal_store.locking.file_lock.asyncio.sleep", fake_sleep
        )
        lock = FileLock(primary, max_retries=3, base_delay=0.1)
        with pytest.raises(LockNotAcquiredError):
            await lock.run(DOC, lambda: asyncio.sleep(0))
        assert delays == pytest.approx([0.1, 0.2])

    async def test_acquires_after_holder_releases(self, primary):
        holder = FileLock(primary)
        waiter = FileLock(primary, max_retries=50, base_delay=0.005)
        order = []
        release = asyncio.Event()

        async def slow():
            order.append("holder")
            await release.wait()

        async def quick():
            order.append("waiter")

        first = asyncio.create_task(holder.run(DOC, slow))
        while not primary.exists(MARKER):
            await asyncio.sleep(0.001)
        second = asyncio.create_task(waiter.run(DOC, quick))
        await asyncio.sleep(0.02)
        assert order == ["holder"]
        release.set()
        await asyncio.gather(first, second)
        assert order == ["holder", "waiter"]

    async def test_removal_failure_logged_not_raised(self, primary, caplog):
        primary.fail_removes.add(MARKER)
        lock = FileLock(primary)

        async def op():
            return 42

        assert await lock.run(DOC, op) == 42
        assert "Failed to remove lock file" in caplog.text


class TestStaleReclaim:
    """Age-based reclaiming of abandoned markers."""

    async def test_disabled_by_default(self, primary):
        primary.put(MARKER, "", mtime=0.0)
        lock = FileLock(primary, max_retries=1)
        with pytest.raises(LockNotAcquiredError):
            await lock.run(DOC, lambda: asyncio.sleep(0))

    async def test_old_marker_reclaimed(self, primary, caplog):
        primary.put(MARKER, "", mtime=time.time() - 3600)
        lock = FileLock(primary, max_retries=1, stale_after=60)

        async def op():
            return "ran"

        assert await lock.run(DOC, op) == "ran"
        assert "Reclaiming stale lock" in caplog.text
        assert not primary.exists(MARKER)

    async def test_fresh_marker_kept(self, primary):
        primary.put(MARKER, "", mtime=time.time())
        lock = FileLock(primary, max_retries=1, stale_after=60)
        with pytest.raises(LockNotAcquiredError):
            await lock.run(DOC, lambda: asyncio.sleep(0))
        assert primary.exists(MARKER)

    async def test_filesystem_marker(self, fs_primary):
        marker = fs_primary.resolve(MARKER)
        marker.parent.mkdir(parents=True)
        marker.touch()
        old = time.time() - 3600
        os.utime(marker, (old, old))
        lock = FileLock(fs_primary, max_retries=1, stale_after=60)

        async def op():
            return marker.exists()

        assert await lock.run(DOC, op) is True
        assert not marker.exists()
