"""Locked access to per-user shared documents.

Notifications and assignments are JSON arrays stored per user on the
shared store and rewritten wholesale on every change.  Plain reads and
writes hold the cross-process file lock for the document.  ``update_*``
additionally hold the in-process lock for the user's document, so the
whole read-modify-write sequence is exclusive.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from portal_store.codec import parse_document, render_document
from portal_store.core.async_utils import run_sync
from portal_store.errors import DocumentFormatError
from portal_store.locking.file_lock import FileLock
from portal_store.locking.serializer import OperationSerializer
from portal_store.storage.layout import StoreLayout

logger = logging.getLogger(__name__)

NOTIFICATIONS = "notifications"
ASSIGNMENTS = "assignments"

Records = list[Any]


class UserDocumentStore:
    """Read and write per-user notification and assignment documents.

    Args:
        file_lock: Marker-file lock on the store that holds the documents.
        serializer: In-process lock table shared with the rest of the service.
        layout: Store layout used to locate documents.
    """

    def __init__(
        self,
        file_lock: FileLock,
        serializer: OperationSerializer,
        layout: StoreLayout | None = None,
    ) -> None:
        self.file_lock = file_lock
        self.storage = file_lock.storage
        self.serializer = serializer
        self.layout = layout or StoreLayout()

    # ------------------------------------------------------------------
    # Named wrappers
    # ------------------------------------------------------------------

    async def read_notifications(self, user_id: str) -> Records:
        return await self.read(user_id, NOTIFICATIONS)

    async def write_notifications(self, user_id: str, items: Records) -> None:
        await self.write(user_id, NOTIFICATIONS, items)

    async def update_notifications(
        self, user_id: str, change: Callable[[Records], Records]
    ) -> Records:
        return await self.update(user_id, NOTIFICATIONS, change)

    async def read_assignments(self, user_id: str) -> Records:
        return await self.read(user_id, ASSIGNMENTS)

    async def write_assignments(self, user_id: str, items: Records) -> None:
        await self.write(user_id, ASSIGNMENTS, items)

    async def update_assignments(
        self, user_id: str, change: Callable[[Records], Records]
    ) -> Records:
        return await self.update(user_id, ASSIGNMENTS, change)

    # ------------------------------------------------------------------
    # Generic operations
    # ------------------------------------------------------------------

    async def read(self, user_id: str, kind: str) -> Records:
        """Return the document's records; a missing document reads as ``[]``."""
        path = self.layout.user_document_path(user_id, kind)
        return await self.file_lock.run(path, lambda: self._load(path))

    async def write(self, user_id: str, kind: str, items: Records) -> None:
        """Replace the document, creating parent directories as needed."""
        path = self.layout.user_document_path(user_id, kind)
        await self.file_lock.run(path, lambda: self._store(path, items))

    async def update(
        self,
        user_id: str,
        kind: str,
        change: Callable[[Records], Records],
    ) -> Records:
        """Apply *change* to the current records and write the result.

        The in-process lock for ``<kind>:<user_id>`` and the file lock are
        both held from the read until the write completes.

        Returns:
            The records as written.
        """
        path = self.layout.user_document_path(user_id, kind)

        async def _locked() -> Records:
            current = await self._load(path)
            updated = change(list(current))
            await self._store(path, updated)
            return updated

        return await self.serializer.with_lock(
            f"{kind}:{user_id}",
            lambda: self.file_lock.run(path, _locked),
        )

    # ------------------------------------------------------------------
    # Unlocked I/O (callers hold the locks)
    # ------------------------------------------------------------------

    async def _load(self, path: str) -> Records:
        try:
            text = await run_sync(self.storage.read_text, path)
        except FileNotFoundError:
            return []
        if not text.strip():
            return []
        data = parse_document(text, source=path)
        if not isinstance(data, list):
            raise DocumentFormatError(
                f"{path}: expected a JSON array, got {type(data).__name__}"
            )
        return data

    async def _store(self, path: str, items: Records) -> None:
        parent = path.rsplit("/", 1)[0]
        await run_sync(self.storage.make_dirs, parent)
        await run_sync(self.storage.write_text, path, render_document(items))
        logger.debug("Wrote %d records to %s", len(items), path)
