"""Concurrency safety for shared documents.

- ``serializer`` -- ``OperationSerializer``: per-key in-process exclusion
  with retry/backoff and a watchdog.
- ``file_lock``  -- ``FileLock``: cross-process exclusion via ``.lock``
  marker files.
- ``documents``  -- ``UserDocumentStore``: locked notification and
  assignment documents.
"""

from .documents import ASSIGNMENTS, NOTIFICATIONS, UserDocumentStore
from .file_lock import FileLock
from .serializer import LockEntry, OperationSerializer

__all__ = [
    "ASSIGNMENTS",
    "FileLock",
    "LockEntry",
    "NOTIFICATIONS",
    "OperationSerializer",
    "UserDocumentStore",
]
