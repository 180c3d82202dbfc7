"""Primary-to-local tree sync engine.

``TreeSyncEngine`` pulls the shared subtree of the primary store into the
local store so the portal keeps working when the primary store drops
off the network.  It:

1. Checks that the primary store is reachable (no writes otherwise).
2. Creates the local shared directories.
3. Copies files, either only those that are missing locally or strictly
   newer on the primary (smart), or all of them (force).
4. Appends one line to the local sync log.
5. Builds and returns a ``SyncReport``.

Error handling is per file: a single copy failure is logged and recorded in
the report, and the run carries on.  Lock markers left by other processes
are never copied.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from portal_store.core.async_utils import run_sync
from portal_store.locking.file_lock import LOCK_SUFFIX
from portal_store.outcome import WriteOutcome
from portal_store.storage.base import Storage
from portal_store.storage.layout import StoreLayout
from portal_store.sync.models import SyncMode, SyncReport, SyncStatus

logger = logging.getLogger(__name__)

_LAST_SYNC = re.compile(r"^\[(.*?)\]")

_BYTES_PER_MB = 1024 * 1024


class TreeSyncEngine:
    """Copy the shared subtree from the primary store to the local store.

    Args:
        primary: Source store (may be unreachable).
        local: Destination store.
        layout: Relative paths of the shared subtree and sync log.
    """

    def __init__(
        self,
        primary: Storage,
        local: Storage,
        layout: StoreLayout | None = None,
    ) -> None:
        self.primary = primary
        self.local = local
        self.layout = layout or StoreLayout()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def synchronize(self, mode: SyncMode = SyncMode.SMART) -> SyncReport:
        """Run one sync pass.

        Args:
            mode: ``SMART`` copies only what changed; ``FORCE`` overwrites
                the local shared subtree.

        Returns:
            A ``SyncReport``.  ``success`` is ``False`` only when the run
            could not start.
        """
        started_at = datetime.now(timezone.utc).isoformat()

        if not await self._primary_reachable():
            message = f"Primary store is not reachable: {self.primary.label}"
            logger.error("Sync aborted: %s", message)
            return SyncReport(
                success=False,
                mode=mode,
                errors=[message],
                started_at=started_at,
                completed_at=datetime.now(timezone.utc).isoformat(),
            )

        errors: list[str] = []
        try:
            await run_sync(self.local.make_dirs, self.layout.items_path)
        except OSError as exc:
            logger.error("Cannot create local shared directory: %s", exc)
            return SyncReport(
                success=False,
                mode=mode,
                errors=[f"{self.layout.items_path}: {exc}"],
                started_at=started_at,
                completed_at=datetime.now(timezone.utc).isoformat(),
            )

        if mode == SyncMode.FORCE:
            synced, skipped = await self._force_pass(errors)
        else:
            synced, skipped = await self._smart_pass(errors)

        completed_at = datetime.now(timezone.utc).isoformat()
        log_outcome = await self._append_log(completed_at, mode, synced, skipped)

        logger.info(
            "Sync complete (%s): %d synced, %d skipped, %d errors",
            mode.value,
            synced,
            skipped,
            len(errors),
        )
        return SyncReport(
            success=True,
            mode=mode,
            synced_count=synced,
            skipped_count=skipped,
            errors=errors,
            started_at=started_at,
            completed_at=completed_at,
            log_outcome=log_outcome,
        )

    async def status(self) -> SyncStatus:
        """Report connectivity, last sync time and primary item totals."""
        errors: list[str] = []
        last_sync = await self._last_sync(errors)

        if not await self._primary_reachable():
            errors.append(f"Primary store is not reachable: {self.primary.label}")
            return SyncStatus(connected=False, last_sync=last_sync, errors=errors)

        items_path = self.layout.items_path
        count = 0
        total = 0
        try:
            if await run_sync(self.primary.exists, items_path):
                count = len(await run_sync(self.primary.list_dir, items_path))
                for rel in await run_sync(self.primary.walk_files, items_path):
                    stat = await run_sync(
                        self.primary.stat, f"{items_path}/{rel}"
                    )
                    total += stat.size
        except OSError as exc:
            logger.warning("Could not read primary items directory: %s", exc)
            errors.append(f"{items_path}: {exc}")

        return SyncStatus(
            connected=True,
            last_sync=last_sync,
            primary_item_count=count,
            total_size_mb=round(total / _BYTES_PER_MB, 2),
            errors=errors,
        )

    # ------------------------------------------------------------------
    # Smart sync
    # ------------------------------------------------------------------

    async def _smart_pass(self, errors: list[str]) -> tuple[int, int]:
        synced = 0
        skipped = 0

        for path in self.layout.synced_ledger_paths:
            try:
                if not await run_sync(self.primary.exists, path):
                    logger.debug("No ledger %s on primary store", path)
                    continue
                if await self._copy_if_newer(path):
                    synced += 1
                else:
                    skipped += 1
            except Exception as exc:
                logger.error("Error syncing ledger %s: %s", path, exc)
                errors.append(f"{path}: {exc}")

        items_path = self.layout.items_path
        try:
            entries = []
            if await run_sync(self.primary.exists, items_path):
                entries = await run_sync(self.primary.list_dir, items_path)
        except OSError as exc:
            logger.error("Cannot list primary items in %s: %s", items_path, exc)
            errors.append(f"{items_path}: {exc}")
            return synced, skipped

        for entry in entries:
            if entry.endswith(LOCK_SUFFIX):
                continue
            item_path = f"{items_path}/{entry}"
            try:
                stat = await run_sync(self.primary.stat, item_path)
                if not stat.is_dir:
                    if await self._copy_if_newer(item_path):
                        synced += 1
                    else:
                        skipped += 1
                elif not await run_sync(self.local.exists, item_path):
                    await run_sync(
                        self.primary.copy_tree,
                        item_path,
                        self.local,
                        ignore_suffixes=(LOCK_SUFFIX,),
                    )
                    logger.debug("Copied new item directory %s", item_path)
                    synced += 1
                else:
                    item_synced, item_skipped = await self._sync_item_files(
                        item_path, errors
                    )
                    synced += item_synced
                    skipped += item_skipped
            except Exception as exc:
                logger.error("Error syncing item %s: %s", item_path, exc)
                errors.append(f"{item_path}: {exc}")

        return synced, skipped

    async def _sync_item_files(
        self, item_path: str, errors: list[str]
    ) -> tuple[int, int]:
        """Copy the files of an existing item directory that changed."""
        synced = 0
        skipped = 0
        for rel in await run_sync(self.primary.walk_files, item_path):
            if rel.endswith(LOCK_SUFFIX):
                continue
            path = f"{item_path}/{rel}"
            try:
                if await self._copy_if_newer(path):
                    synced += 1
                else:
                    skipped += 1
            except Exception as exc:
                logger.error("Error syncing %s: %s", path, exc)
                errors.append(f"{path}: {exc}")
        return synced, skipped

    async def _copy_if_newer(self, path: str) -> bool:
        """Copy *path* if missing locally or strictly newer on the primary."""
        if await run_sync(self.local.exists, path):
            primary_stat = await run_sync(self.primary.stat, path)
            local_stat = await run_sync(self.local.stat, path)
            if primary_stat.mtime <= local_stat.mtime:
                return False
        await run_sync(self.primary.copy_file, path, self.local)
        logger.debug("Copied %s", path)
        return True

    # ------------------------------------------------------------------
    # Force sync
    # ------------------------------------------------------------------

    async def _force_pass(self, errors: list[str]) -> tuple[int, int]:
        shared = self.layout.shared_dir
        try:
            files = await run_sync(self.primary.walk_files, shared)
        except OSError as exc:
            logger.error("Cannot walk primary shared directory: %s", exc)
            errors.append(f"{shared}: {exc}")
            files = []

        for rel in files:
            if rel.endswith(LOCK_SUFFIX):
                continue
            path = f"{shared}/{rel}"
            try:
                await run_sync(self.primary.copy_file, path, self.local)
            except Exception as exc:
                logger.error("Error copying %s: %s", path, exc)
                errors.append(f"{path}: {exc}")

        local_files = await run_sync(self.local.walk_files, shared)
        managed = [rel for rel in local_files if not rel.endswith(LOCK_SUFFIX)]
        return len(managed), 0

    # ------------------------------------------------------------------
    # Sync log
    # ------------------------------------------------------------------

    async def _append_log(
        self, timestamp: str, mode: SyncMode, synced: int, skipped: int
    ) -> WriteOutcome:
        """Append one line to the local sync log; never raises."""
        path = self.layout.sync_log
        target = f"{self.local.label}/{path}"
        line = (
            f"[{timestamp}] sync complete ({mode.value}): "
            f"{synced} synced, {skipped} skipped\n"
        )
        try:
            existing = ""
            if await run_sync(self.local.exists, path):
                existing = await run_sync(self.local.read_text, path)
                if existing and not existing.endswith("\n"):
                    existing += "\n"
            parent = path.rsplit("/", 1)[0] if "/" in path else ""
            if parent:
                await run_sync(self.local.make_dirs, parent)
            await run_sync(self.local.write_text, path, existing + line)
        except Exception as exc:
            logger.warning("Could not append to sync log %s: %s", target, exc)
            return WriteOutcome.failed(target, exc)
        return WriteOutcome.ok(target)

    async def _last_sync(self, errors: list[str]) -> str | None:
        path = self.layout.sync_log
        try:
            if not await run_sync(self.local.exists, path):
                return None
            text = await run_sync(self.local.read_text, path)
        except Exception as exc:
            logger.warning("Could not read sync log %s: %s", path, exc)
            errors.append(f"{path}: {exc}")
            return None
        lines = [line for line in text.splitlines() if line.strip()]
        if not lines:
            return None
        match = _LAST_SYNC.match(lines[-1])
        return match.group(1) if match else None

    async def _primary_reachable(self) -> bool:
        try:
            return await run_sync(self.primary.is_available)
        except OSError as exc:
            logger.warning("Primary store check failed: %s", exc)
            return False
