"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_sync_report`` -- full post-sync summary.
- ``format_sync_status`` -- connectivity and last-sync snapshot.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncReport, SyncStatus

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    The errors section is only included when there is at least one error.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Sync report ({report.mode.value})"
    if not report.success:
        header += " FAILED"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"{report.synced_count} synced, {report.skipped_count} skipped, "
        f"{len(report.errors)} errors"
    )
    lines.append("")

    if report.errors:
        lines.append("Errors:")
        for error in report.errors:
            lines.append(f"  {error}")
        lines.append("")

    if report.log_outcome is not None and not report.log_outcome.success:
        lines.append(
            f"Warning: sync log not updated ({report.log_outcome.error})"
        )
        lines.append("")

    return "\n".join(lines).rstrip()


def format_sync_status(status: SyncStatus) -> str:
    """Format a sync status snapshot as human-readable text."""
    lines = [
        f"Primary store: {'connected' if status.connected else 'NOT CONNECTED'}",
        f"Last sync:     {status.last_sync or 'never'}",
    ]
    if status.connected:
        lines.append(f"Items:         {status.primary_item_count}")
        lines.append(f"Total size:    {status.total_size_mb:.2f} MB")
    for error in status.errors:
        lines.append(f"  ! {error}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with mode, timestamps, counts, errors and the sync-log outcome.
    """
    result: dict = {
        "success": report.success,
        "mode": report.mode.value,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "synced": report.synced_count,
            "skipped": report.skipped_count,
            "errors": len(report.errors),
        },
        "errors": list(report.errors),
    }
    if report.log_outcome is not None:
        result["sync_log"] = report.log_outcome.model_dump()
    return result
