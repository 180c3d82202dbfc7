"""Primary-to-local tree synchronisation.

Modules:

- ``engine``   -- ``TreeSyncEngine``: smart and force sync passes, sync log
  and status snapshot.
- ``models``   -- ``SyncMode``, ``SyncReport``, ``SyncStatus``.
- ``reporter`` -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from portal_store.storage import FilesystemStorage
    from portal_store.sync import SyncMode, TreeSyncEngine, format_sync_report

    engine = TreeSyncEngine(
        primary=FilesystemStorage("/mnt/portal"),
        local=FilesystemStorage("./data"),
    )
    report = await engine.synchronize(SyncMode.SMART)
    print(format_sync_report(report))
"""

from .engine import TreeSyncEngine
from .models import SyncMode, SyncReport, SyncStatus
from .reporter import format_sync_report, format_sync_status, report_to_json

__all__ = [
    "SyncMode",
    "SyncReport",
    "SyncStatus",
    "TreeSyncEngine",
    "format_sync_report",
    "format_sync_status",
    "report_to_json",
]
