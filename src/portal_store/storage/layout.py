"""Relative paths shared by both stores.

Both stores use the same layout, so one ``StoreLayout`` answers "where is
X" for either of them::

    shared/materials.csv                 catalog ledger
    shared/categories.csv                other synced ledgers
    shared/materials/<id>/metadata.json  detail document (+ attachments)
    users/<user>/notifications/notifications.json
    users/<user>/assignments/assignments.json
    logs/sync.log                        local only
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from portal_store.config_schema import UnifiedConfig

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_.@-]+$")


def _join(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


@dataclass(frozen=True)
class StoreLayout:
    shared_dir: str = "shared"
    ledger_file: str = "materials.csv"
    items_dir: str = "materials"
    detail_document: str = "metadata.json"
    synced_ledgers: tuple[str, ...] = field(
        default=("materials.csv", "categories.csv")
    )
    sync_log: str = "logs/sync.log"
    users_dir: str = "users"

    @classmethod
    def from_config(cls, config: UnifiedConfig) -> "StoreLayout":
        return cls(
            shared_dir=config.sync.shared_dir,
            ledger_file=config.catalog.ledger_file,
            items_dir=config.catalog.items_dir,
            detail_document=config.catalog.detail_document,
            synced_ledgers=tuple(config.sync.ledger_files),
            sync_log=config.sync.sync_log,
        )

    @property
    def ledger_path(self) -> str:
        return _join(self.shared_dir, self.ledger_file)

    @property
    def items_path(self) -> str:
        return _join(self.shared_dir, self.items_dir)

    @property
    def synced_ledger_paths(self) -> list[str]:
        return [_join(self.shared_dir, name) for name in self.synced_ledgers]

    def item_path(self, item_id: str) -> str:
        return _join(self.items_path, safe_segment(item_id, "item id"))

    def detail_path(self, item_id: str) -> str:
        return _join(self.item_path(item_id), self.detail_document)

    def user_document_path(self, user_id: str, kind: str) -> str:
        """Path of a per-user document such as ``notifications``."""
        user = safe_segment(user_id, "user id")
        return _join(self.users_dir, user, kind, f"{kind}.json")


def safe_segment(value: str, what: str) -> str:
    """Return *value* if it is usable as a single path segment.

    Raises:
        ValueError: If *value* is empty, contains a separator, or is ``.``/``..``.
    """
    if not value or value in (".", "..") or not _SAFE_SEGMENT.match(value):
        raise ValueError(f"Invalid {what}: {value!r}")
    return value
