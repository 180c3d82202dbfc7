"""Pydantic models for the primary-to-local tree sync.

- ``SyncMode``: smart (mtime-driven) or force (overwrite everything).
- ``SyncReport``: outcome of one sync run.
- ``SyncStatus``: connectivity and last-sync snapshot for the CLI.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from portal_store.outcome import WriteOutcome


class SyncMode(str, Enum):
    """How the shared subtree is copied from primary to local."""

    SMART = "smart"
    FORCE = "force"


class SyncReport(BaseModel):
    """Aggregate report for one sync run.

    Attributes:
        success: ``False`` only when the run could not start (primary store
            unreachable); per-file failures are listed in ``errors``.
        mode: Sync mode that was run.
        synced_count: Files (or whole new item directories) copied; for a
            force sync, the number of files in the local shared subtree
            afterwards.
        skipped_count: Files left alone because local was up to date.
        errors: One message per failed file or item.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
        log_outcome: Result of appending to the sync log, ``None`` when the
            run did not get that far.
    """

    success: bool
    mode: SyncMode
    synced_count: int = 0
    skipped_count: int = 0
    errors: list[str] = Field(default_factory=list)
    started_at: str
    completed_at: str | None = None
    log_outcome: WriteOutcome | None = None

    model_config = {"frozen": True}

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def summary(self) -> str:
        """Format a human-readable summary of the sync run.

        Returns:
            Multi-line summary string with counts.
        """
        lines = [
            f"Sync report ({self.mode.value})"
            + ("" if self.success else " FAILED"),
            f"  Synced:  {self.synced_count}",
            f"  Skipped: {self.skipped_count}",
            f"  Errors:  {len(self.errors)}",
        ]
        return "\n".join(lines)


class SyncStatus(BaseModel):
    """Snapshot of the sync state as seen from this machine.

    Attributes:
        connected: Whether the primary store is reachable.
        last_sync: Timestamp of the last logged sync, if any.
        primary_item_count: Entries in the primary items directory.
        total_size_mb: Size of the primary items directory in MiB,
            rounded to two decimals.
        errors: Problems met while collecting the snapshot.
    """

    connected: bool
    last_sync: str | None = None
    primary_item_count: int = 0
    total_size_mb: float = 0.0
    errors: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}
