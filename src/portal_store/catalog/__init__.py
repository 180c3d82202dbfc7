"""Catalog reconciliation between the primary and local stores.

Modules:

- ``models``     -- ``CatalogItem``, ``Provenance``, ``LedgerComparison``
  and the ledger mutation contracts.
- ``reconciler`` -- ``CatalogReconciler``: compare, scan detail documents,
  merge.
- ``ledger``     -- ``CatalogLedger``: locked ledger upsert/remove with a
  best-effort local mirror.
- ``reporter``   -- text and JSON rendering for the CLI.
"""

from .ledger import CATALOG_LOCK_KEY, CatalogLedger
from .models import (
    CatalogItem,
    DeleteScope,
    LedgerComparison,
    LedgerDrift,
    LedgerWriteResult,
    Provenance,
)
from .reconciler import CatalogReconciler
from .reporter import catalog_to_json, format_catalog, format_comparison

__all__ = [
    "CATALOG_LOCK_KEY",
    "CatalogItem",
    "CatalogLedger",
    "CatalogReconciler",
    "DeleteScope",
    "LedgerComparison",
    "LedgerDrift",
    "LedgerWriteResult",
    "Provenance",
    "catalog_to_json",
    "format_catalog",
    "format_comparison",
]
