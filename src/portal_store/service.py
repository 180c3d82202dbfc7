"""Service object owning the stores, lock table and engines.

One ``PortalStore`` is built per process from a validated ``UnifiedConfig``
and passed to whatever needs it; nothing in the package keeps module-level
state.  Tests build it with in-memory stores via the ``primary`` and
``local`` arguments.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from portal_store.catalog.ledger import CATALOG_LOCK_KEY, CatalogLedger
from portal_store.catalog.models import CatalogItem, LedgerComparison
from portal_store.catalog.reconciler import CatalogReconciler
from portal_store.config_schema import UnifiedConfig
from portal_store.locking.documents import UserDocumentStore
from portal_store.locking.file_lock import FileLock
from portal_store.locking.serializer import OperationSerializer
from portal_store.storage.base import Storage
from portal_store.storage.filesystem import FilesystemStorage
from portal_store.storage.layout import StoreLayout
from portal_store.sync.engine import TreeSyncEngine
from portal_store.sync.models import SyncMode, SyncReport, SyncStatus

T = TypeVar("T")
logger = logging.getLogger(__name__)


class PortalStore:
    """Entry point for catalog reconciliation, sync and locked documents.

    Args:
        config: Validated configuration.
        primary: Primary store; defaults to a filesystem store at
            ``config.stores.primary_root``.
        local: Local store; defaults to a filesystem store at
            ``config.stores.local_root``.
    """

    def __init__(
        self,
        config: UnifiedConfig,
        primary: Storage | None = None,
        local: Storage | None = None,
    ) -> None:
        self.config = config
        if primary is None:
            if not config.stores.primary_root:
                raise ValueError("stores.primary_root is not configured")
            primary = FilesystemStorage(config.stores.primary_root)
        self.primary = primary
        self.local = local or FilesystemStorage(config.stores.local_root)
        self.layout = StoreLayout.from_config(config)

        locks = config.locks
        self.serializer = OperationSerializer(
            max_retries=locks.max_retries,
            retry_delay=locks.retry_delay,
            watchdog_timeout=locks.watchdog_timeout,
        )
        self.primary_lock = FileLock(
            self.primary,
            max_retries=locks.file_lock_retries,
            stale_after=locks.stale_after,
        )
        self.local_lock = FileLock(
            self.local,
            max_retries=locks.file_lock_retries,
            stale_after=locks.stale_after,
        )

        self.reconciler = CatalogReconciler(self.primary, self.local, self.layout)
        self.sync_engine = TreeSyncEngine(self.primary, self.local, self.layout)
        self.ledger = CatalogLedger(
            self.primary_lock, self.local_lock, self.serializer, self.layout
        )
        self.documents = UserDocumentStore(
            self.primary_lock, self.serializer, self.layout
        )
        logger.debug(
            "PortalStore ready: primary=%s local=%s",
            self.primary.label,
            self.local.label,
        )

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def reconcile_catalog(self) -> list[CatalogItem]:
        """Return the reconciled, provenance-tagged catalog."""
        return await self.reconciler.reconcile_catalog()

    async def compare(self) -> LedgerComparison:
        """Compare the primary and local ledgers."""
        return await self.reconciler.compare_stores()

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def synchronize(self, mode: SyncMode = SyncMode.SMART) -> SyncReport:
        """Pull the shared subtree from primary to local.

        Runs under the ``catalog`` key so a sync never interleaves with a
        ledger rewrite in the same process.  The sync itself is not retried.
        """
        return await self.serializer.with_lock(
            CATALOG_LOCK_KEY,
            lambda: self.sync_engine.synchronize(mode),
            max_retries=1,
        )

    async def sync_status(self) -> SyncStatus:
        return await self.sync_engine.status()

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    async def with_lock(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> T:
        """Run *operation* as the only in-process holder of *key*."""
        return await self.serializer.with_lock(
            key, operation, max_retries=max_retries, retry_delay=retry_delay
        )

    async def with_file_lock(
        self,
        path: str,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
    ) -> T:
        """Run *operation* while holding the primary-store marker for *path*."""
        return await self.primary_lock.run(path, operation, max_retries=max_retries)
