"""Catalog reconciliation, tree sync and document locking for the knowledge portal."""

__version__ = "0.4.0"

from .errors import (
    LockNotAcquiredError,
    OperationFailedError,
    PortalStoreError,
    PrimaryStoreUnavailable,
)
from .service import PortalStore

__all__ = [
    "LockNotAcquiredError",
    "OperationFailedError",
    "PortalStore",
    "PortalStoreError",
    "PrimaryStoreUnavailable",
    "__version__",
]
