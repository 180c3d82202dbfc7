"""Catalog reconciliation engine.

Builds the single catalog view the portal serves from two independently
mutable copies:

1. Read the local ledger (always available, may be empty).
2. Check primary-store reachability.
3. Read the primary ledger and partition ids into primary-only,
   local-only and both.  The primary row wins for shared ids; differing
   ``updated_at`` values are recorded as drift but never merged.
4. Scan local detail documents; each one is ``both`` if the primary store
   holds the same document or its primary ledger lists the id, else
   ``local``.  So ``local`` only wins the merge for ids the primary
   ledger lacks.
5. Merge every candidate list: one entry per id, the richer variant's
   fields, the strongest provenance (``local > both > primary``), sorted by
   numeric id.

Storage and format errors never reach the caller.  If the primary store is
unreachable or fails part-way, the result falls back to the local ledger
with provenance inferred from row tags or reachability, and the failure is
logged.
"""

from __future__ import annotations

import logging
from typing import Collection, Iterable, Mapping

from pydantic import ValidationError

from portal_store.catalog.models import (
    CatalogItem,
    LedgerComparison,
    LedgerDrift,
    Provenance,
    provenance_tag,
    row_id,
    row_updated_at,
)
from portal_store.codec import LedgerRow, parse_document, parse_ledger
from portal_store.core.async_utils import run_sync
from portal_store.errors import PortalStoreError
from portal_store.storage.base import Storage
from portal_store.storage.layout import StoreLayout

logger = logging.getLogger(__name__)


class CatalogReconciler:
    """Reconcile primary and local catalogs into one provenance-tagged list.

    Args:
        primary: Authoritative shared store (may be unreachable).
        local: Per-machine fallback store.
        layout: Relative paths of ledgers and item directories.
    """

    def __init__(
        self,
        primary: Storage,
        local: Storage,
        layout: StoreLayout | None = None,
    ) -> None:
        self.primary = primary
        self.local = local
        self.layout = layout or StoreLayout()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def reconcile_catalog(self) -> list[CatalogItem]:
        """Return the merged catalog sorted ascending by numeric id."""
        local_rows = await self._read_local_ledger()
        reachable = await self._primary_reachable()

        candidates: list[list[CatalogItem]] = []
        primary_ids: set[str] = set()
        if not reachable:
            logger.warning(
                "Primary store %s unreachable, serving local catalog only",
                self.primary.label,
            )
            candidates.append(self._fallback_items(local_rows, reachable))
        else:
            try:
                primary_rows = await self._read_ledger(self.primary)
                comparison = self.compare(primary_rows, local_rows)
                candidates.extend(
                    [comparison.primary_only, comparison.both, comparison.local_only]
                )
                primary_ids = {
                    item.id for item in comparison.primary_only + comparison.both
                }
            except (OSError, PortalStoreError) as exc:
                logger.warning(
                    "Primary ledger comparison failed (%s), "
                    "falling back to local ledger",
                    exc,
                )
                candidates.append(self._fallback_items(local_rows, reachable))

        candidates.append(
            await self.scan_local_detail_documents(reachable, primary_ids)
        )
        return self.merge_all(*candidates)

    async def compare_stores(self) -> LedgerComparison:
        """Compare the two ledgers as currently stored.

        Unlike ``reconcile_catalog`` an unreachable primary is reported as
        an empty primary ledger rather than triggering the fallback.
        """
        local_rows = await self._read_local_ledger()
        primary_rows: list[LedgerRow] = []
        if await self._primary_reachable():
            try:
                primary_rows = await self._read_ledger(self.primary)
            except (OSError, PortalStoreError) as exc:
                logger.warning("Could not read primary ledger: %s", exc)
        return self.compare(primary_rows, local_rows)

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def compare(
        self,
        primary_rows: Iterable[Mapping[str, str]],
        local_rows: Iterable[Mapping[str, str]],
    ) -> LedgerComparison:
        """Partition two ledgers by id.

        Rows without an id are skipped with a warning.  When a ledger lists
        the same id twice, the first row is used for matching.
        """
        primary_rows = self._with_ids(primary_rows, "primary")
        local_rows = self._with_ids(local_rows, "local")

        local_by_id: dict[str, Mapping[str, str]] = {}
        for row in local_rows:
            local_by_id.setdefault(row_id(row), row)
        primary_ids = {row_id(row) for row in primary_rows}

        primary_only: list[CatalogItem] = []
        both: list[CatalogItem] = []
        drift: list[LedgerDrift] = []
        for row in primary_rows:
            item_id = row_id(row)
            local_row = local_by_id.get(item_id)
            if local_row is None:
                primary_only.append(
                    CatalogItem.from_ledger_row(row, Provenance.PRIMARY)
                )
                continue
            both.append(CatalogItem.from_ledger_row(row, Provenance.BOTH))
            primary_updated = row_updated_at(row)
            local_updated = row_updated_at(local_row)
            if primary_updated != local_updated:
                logger.debug(
                    "Ledger drift for %s: primary=%s local=%s",
                    item_id,
                    primary_updated,
                    local_updated,
                )
                drift.append(
                    LedgerDrift(
                        id=item_id,
                        primary_updated_at=primary_updated,
                        local_updated_at=local_updated,
                    )
                )

        local_only = [
            CatalogItem.from_ledger_row(row, Provenance.LOCAL)
            for row in local_rows
            if row_id(row) not in primary_ids
        ]

        logger.info(
            "Ledger comparison: %d primary-only, %d local-only, %d both "
            "(%d drifted)",
            len(primary_only),
            len(local_only),
            len(both),
            len(drift),
        )
        return LedgerComparison(
            primary_only=primary_only,
            local_only=local_only,
            both=both,
            drift=drift,
            primary_count=len(primary_rows),
            local_count=len(local_rows),
        )

    # ------------------------------------------------------------------
    # Detail documents
    # ------------------------------------------------------------------

    async def scan_local_detail_documents(
        self,
        primary_reachable: bool | None = None,
        primary_ids: Collection[str] = (),
    ) -> list[CatalogItem]:
        """Build items from every detail document in the local store.

        Args:
            primary_reachable: Result of an earlier reachability check; the
                check is performed when ``None``.
            primary_ids: Ids listed in the primary ledger.  A document for
                one of these ids is ``both`` while the primary store is
                reachable, even if the primary store lacks the document.

        Returns:
            Items tagged ``both`` when the primary store has the same
            document or lists the id, else ``local``.  Unreadable documents
            are skipped.
        """
        items_path = self.layout.items_path
        try:
            if not await run_sync(self.local.exists, items_path):
                return []
            entries = await run_sync(self.local.list_dir, items_path)
        except OSError as exc:
            logger.warning("Could not list local items in %s: %s", items_path, exc)
            return []

        if primary_reachable is None:
            primary_reachable = await self._primary_reachable()

        items: list[CatalogItem] = []
        for entry in entries:
            doc_path = f"{items_path}/{entry}/{self.layout.detail_document}"
            try:
                if not await run_sync(self.local.exists, doc_path):
                    continue
                text = await run_sync(self.local.read_text, doc_path)
                doc = parse_document(text, source=doc_path)
                if not isinstance(doc, Mapping):
                    logger.warning(
                        "Skipping detail document %s: not an object", doc_path
                    )
                    continue
                item = CatalogItem.from_document(doc, entry, Provenance.LOCAL)
            except (OSError, PortalStoreError, ValidationError) as exc:
                logger.warning("Skipping detail document %s: %s", doc_path, exc)
                continue

            if primary_reachable and (
                item.id in primary_ids
                or await self._primary_has(doc_path)
            ):
                item = item.model_copy(update={"provenance": Provenance.BOTH})
            items.append(item)
        return items

    async def _primary_has(self, path: str) -> bool:
        try:
            return await run_sync(self.primary.exists, path)
        except OSError as exc:
            logger.warning(
                "Primary check for %s failed, keeping local copy: %s", path, exc
            )
            return False

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    @staticmethod
    def merge_all(*candidate_lists: Iterable[CatalogItem]) -> list[CatalogItem]:
        """Merge candidate lists into one de-duplicated, sorted catalog.

        For each id the first rich variant (body or attachments) supplies
        the fields, falling back to the first variant seen.  Provenance is
        the strongest across all variants: ``local > both > primary``.
        Items are sorted by numeric id; non-numeric ids sort as 0 and keep
        their first-seen order.
        """
        chosen: dict[str, CatalogItem] = {}
        strongest: dict[str, Provenance] = {}

        for candidates in candidate_lists:
            for item in candidates:
                current = chosen.get(item.id)
                if current is None or (item.is_rich and not current.is_rich):
                    chosen[item.id] = item
                best = strongest.get(item.id)
                if best is None or item.provenance.precedence > best.precedence:
                    strongest[item.id] = item.provenance

        merged = [
            item
            if item.provenance == strongest[item_id]
            else item.model_copy(update={"provenance": strongest[item_id]})
            for item_id, item in chosen.items()
        ]
        merged.sort(key=lambda item: item.sort_key)
        return merged

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fallback_items(
        self, local_rows: list[LedgerRow], primary_reachable: bool
    ) -> list[CatalogItem]:
        """Local ledger rows tagged from their own hint or reachability."""
        default = Provenance.BOTH if primary_reachable else Provenance.LOCAL
        return [
            CatalogItem.from_ledger_row(row, provenance_tag(row) or default)
            for row in self._with_ids(local_rows, "local")
        ]

    async def _primary_reachable(self) -> bool:
        try:
            return await run_sync(self.primary.is_available)
        except OSError as exc:
            logger.warning("Primary store check failed: %s", exc)
            return False

    async def _read_local_ledger(self) -> list[LedgerRow]:
        try:
            return await self._read_ledger(self.local)
        except (OSError, PortalStoreError) as exc:
            logger.warning("Could not read local ledger: %s", exc)
            return []

    async def _read_ledger(self, store: Storage) -> list[LedgerRow]:
        """Read and parse the catalog ledger; a missing file is empty."""
        path = self.layout.ledger_path
        if not await run_sync(store.exists, path):
            logger.debug("No ledger at %s in %s", path, store.label)
            return []
        text = await run_sync(store.read_text, path)
        return parse_ledger(text, source=f"{store.label}/{path}")

    @staticmethod
    def _with_ids(
        rows: Iterable[Mapping[str, str]], side: str
    ) -> list[Mapping[str, str]]:
        kept = []
        for row in rows:
            if row_id(row):
                kept.append(row)
            else:
                logger.warning("Skipping %s ledger row without id: %s", side, row)
        return kept
