"""Catalog ledger mutations.

The ledger is rewritten wholesale on every change, so each mutation holds
the in-process ``catalog`` lock and the store's file lock for the full
read-modify-write sequence.

Writes go to the primary store when it is reachable; the local ledger is
then updated as a best-effort mirror whose result is returned as a
``WriteOutcome`` instead of being raised.  With the primary store offline
the local ledger is the only write, which later reconciles as a
``local`` item.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from portal_store.catalog.models import (
    LEDGER_FIELDS,
    CatalogItem,
    DeleteScope,
    LedgerWriteResult,
    row_id,
)
from portal_store.codec import LedgerRow, parse_ledger, render_ledger
from portal_store.core.async_utils import run_sync
from portal_store.errors import PrimaryStoreUnavailable
from portal_store.locking.file_lock import FileLock
from portal_store.locking.serializer import OperationSerializer
from portal_store.outcome import WriteOutcome
from portal_store.storage.layout import StoreLayout

logger = logging.getLogger(__name__)

CATALOG_LOCK_KEY = "catalog"

# Takes the current rows, returns (new rows, whether anything changed).
RowChange = Callable[[list[LedgerRow]], tuple[list[LedgerRow], bool]]


class CatalogLedger:
    """Add, update and delete catalog entries on both stores.

    Args:
        primary_lock: File lock on the primary store.
        local_lock: File lock on the local store.
        serializer: In-process lock table.
        layout: Store layout.
    """

    def __init__(
        self,
        primary_lock: FileLock,
        local_lock: FileLock,
        serializer: OperationSerializer,
        layout: StoreLayout | None = None,
    ) -> None:
        self.primary_lock = primary_lock
        self.local_lock = local_lock
        self.serializer = serializer
        self.layout = layout or StoreLayout()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def upsert(self, item: CatalogItem) -> LedgerWriteResult:
        """Insert or replace *item* in the ledger.

        ``updated_at`` is set to the current time; ``created_at`` is filled
        in when empty.
        """
        self.layout.item_path(item.id)  # validates the id
        now = datetime.now(timezone.utc).isoformat()
        stamped = item.model_copy(
            update={"updated_at": now, "created_at": item.created_at or now}
        )
        new_row = stamped.to_ledger_row()

        def change(rows: list[LedgerRow]) -> tuple[list[LedgerRow], bool]:
            out: list[LedgerRow] = []
            replaced = False
            for row in rows:
                if row_id(row) == stamped.id and not replaced:
                    out.append({**row, **new_row})
                    replaced = True
                elif row_id(row) != stamped.id:
                    out.append(row)
            if not replaced:
                out.append(new_row)
            return out, True

        return await self.serializer.with_lock(
            CATALOG_LOCK_KEY, lambda: self._write_through(stamped.id, change)
        )

    async def remove(
        self, item_id: str, scope: DeleteScope = DeleteScope.BOTH
    ) -> LedgerWriteResult:
        """Delete *item_id* and its item directory from the stores in *scope*.

        Raises:
            PrimaryStoreUnavailable: If *scope* is ``primary`` and the
                primary store cannot be reached.
        """
        item_path = self.layout.item_path(item_id)

        def change(rows: list[LedgerRow]) -> tuple[list[LedgerRow], bool]:
            kept = [row for row in rows if row_id(row) != item_id]
            return kept, len(kept) != len(rows)

        async def _remove() -> LedgerWriteResult:
            primary = self._target(self.primary_lock)
            local = self._target(self.local_lock)

            if scope in (DeleteScope.PRIMARY, DeleteScope.BOTH):
                if await run_sync(self.primary_lock.storage.is_available):
                    primary_outcome = await self._delete_in(
                        self.primary_lock, change, item_path
                    )
                else:
                    primary_outcome = WriteOutcome.skipped(
                        primary, "primary store unreachable"
                    )
            else:
                primary_outcome = WriteOutcome.skipped(primary, "not in scope")

            if scope in (DeleteScope.LOCAL, DeleteScope.BOTH):
                local_outcome = await self._delete_in(
                    self.local_lock, change, item_path
                )
            else:
                local_outcome = WriteOutcome.skipped(local, "not in scope")

            logger.info(
                "Removed catalog item %s (scope=%s, primary=%s, local=%s)",
                item_id,
                scope.value,
                primary_outcome.success,
                local_outcome.success,
            )
            return LedgerWriteResult(
                item_id=item_id, primary=primary_outcome, local=local_outcome
            )

        if scope == DeleteScope.PRIMARY and not await run_sync(
            self.primary_lock.storage.is_available
        ):
            raise PrimaryStoreUnavailable(self.primary_lock.storage.label)

        return await self.serializer.with_lock(CATALOG_LOCK_KEY, _remove)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _write_through(
        self, item_id: str, change: RowChange
    ) -> LedgerWriteResult:
        primary = self._target(self.primary_lock)
        local = self._target(self.local_lock)

        if not await run_sync(self.primary_lock.storage.is_available):
            logger.warning(
                "Primary store unreachable, writing %s to local ledger only",
                item_id,
            )
            await self._rewrite(self.local_lock, change)
            return LedgerWriteResult(
                item_id=item_id,
                primary=WriteOutcome.skipped(primary, "primary store unreachable"),
                local=WriteOutcome.ok(local),
            )

        await self._rewrite(self.primary_lock, change)
        try:
            await self._rewrite(self.local_lock, change)
            mirror = WriteOutcome.ok(local)
        except Exception as exc:
            logger.warning("Local ledger mirror failed for %s: %s", item_id, exc)
            mirror = WriteOutcome.failed(local, exc)

        return LedgerWriteResult(
            item_id=item_id, primary=WriteOutcome.ok(primary), local=mirror
        )

    async def _delete_in(
        self, lock: FileLock, change: RowChange, item_path: str
    ) -> WriteOutcome:
        store = lock.storage

        async def _locked() -> bool:
            changed = await self._apply(lock, change)
            if await run_sync(store.exists, item_path):
                await run_sync(store.remove_tree, item_path)
                changed = True
            return changed

        found = await lock.run(self.layout.ledger_path, _locked)
        target = self._target(lock)
        if not found:
            return WriteOutcome.failed(target, "item not found")
        return WriteOutcome.ok(target)

    async def _rewrite(self, lock: FileLock, change: RowChange) -> bool:
        return await lock.run(
            self.layout.ledger_path, lambda: self._apply(lock, change)
        )

    async def _apply(self, lock: FileLock, change: RowChange) -> bool:
        """Read, change and rewrite the ledger (caller holds the file lock)."""
        store = lock.storage
        path = self.layout.ledger_path
        rows: list[LedgerRow] = []
        if await run_sync(store.exists, path):
            text = await run_sync(store.read_text, path)
            rows = parse_ledger(text, source=f"{store.label}/{path}")

        new_rows, changed = change(rows)
        if not changed:
            return False
        fieldnames = list(rows[0].keys()) if rows else list(LEDGER_FIELDS)
        await run_sync(store.write_text, path, render_ledger(new_rows, fieldnames))
        logger.debug("Rewrote %s in %s (%d rows)", path, store.label, len(new_rows))
        return True

    def _target(self, lock: FileLock) -> str:
        return f"{lock.storage.label}/{self.layout.ledger_path}"
