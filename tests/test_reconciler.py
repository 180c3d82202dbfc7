"""Tests for catalog reconciliation.

Covers:
- Ledger comparison (primary-only, local-only, both, drift)
- Detail document scanning and provenance
- merge_all de-duplication, richness and provenance precedence
- reconcile_catalog end to end, including the offline fallback
"""

from __future__ import annotations

import json

import pytest

from portal_store.catalog.models import CatalogItem, Provenance
from portal_store.catalog.reconciler import CatalogReconciler
from portal_store.codec import render_ledger

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_ledger(store, rows, path="shared/materials.csv"):
    store.put(path, render_ledger(rows))


def _write_detail(store, item_id, **fields):
    store.put(
        f"shared/materials/{item_id}/metadata.json",
        json.dumps({"id": item_id, **fields}),
    )


def _item(item_id, provenance=Provenance.PRIMARY, **fields):
    return CatalogItem(id=item_id, provenance=provenance, **fields)


def _ids_and_provenance(items):
    return [(item.id, item.provenance) for item in items]


@pytest.fixture
def reconciler(primary, local, layout):
    return CatalogReconciler(primary, local, layout)


# ---------------------------------------------------------------------------
# compare()
# ---------------------------------------------------------------------------


class TestCompare:
    """Tests for CatalogReconciler.compare()."""

    def test_partitions_by_id(self, reconciler):
        result = reconciler.compare(
            [{"id": "1", "title": "P1"}, {"id": "3", "title": "P3"}],
            [{"id": "1", "title": "L1"}, {"id": "2", "title": "L2"}],
        )
        assert [i.id for i in result.primary_only] == ["3"]
        assert [i.id for i in result.local_only] == ["2"]
        assert [i.id for i in result.both] == ["1"]
        assert result.local_only[0].provenance == Provenance.LOCAL
        assert result.both[0].provenance == Provenance.BOTH

    def test_primary_row_wins_for_shared_ids(self, reconciler):
        result = reconciler.compare(
            [{"id": "1", "title": "Primary title"}],
            [{"id": "1", "title": "Local title"}],
        )
        assert result.both[0].title == "Primary title"

    def test_drift_recorded_when_updated_differs(self, reconciler):
        result = reconciler.compare(
            [{"id": "1", "updated_date": "2024-01-02"}],
            [{"id": "1", "updated_date": "2024-01-01"}],
        )
        assert len(result.drift) == 1
        drift = result.drift[0]
        assert drift.id == "1"
        assert drift.primary_updated_at == "2024-01-02"
        assert drift.local_updated_at == "2024-01-01"

    def test_no_drift_when_updated_matches(self, reconciler):
        result = reconciler.compare(
            [{"id": "1", "updated_at": "2024-01-01"}],
            [{"id": "1", "updated_date": "2024-01-01"}],
        )
        assert result.drift == []

    def test_rows_without_id_skipped(self, reconciler, caplog):
        result = reconciler.compare([{"id": "", "title": "x"}], [{"title": "y"}])
        assert result.primary_count == 0
        assert result.local_count == 0
        assert "without id" in caplog.text

    def test_legacy_uuid_column_accepted(self, reconciler):
        result = reconciler.compare([{"uuid": "9"}], [])
        assert result.primary_only[0].id == "9"

    def test_summary_counts(self, reconciler):
        result = reconciler.compare(
            [{"id": "1", "updated_date": "b"}, {"id": "2"}],
            [{"id": "1", "updated_date": "a"}, {"id": "5"}],
        )
        assert result.summary() == {
            "primary_count": 2,
            "local_count": 2,
            "primary_only_count": 1,
            "local_only_count": 1,
            "both_count": 1,
            "drift_count": 1,
        }


# ---------------------------------------------------------------------------
# scan_local_detail_documents()
# ---------------------------------------------------------------------------


class TestScanLocalDetailDocuments:
    """Tests for detail document scanning."""

    async def test_local_only_document(self, reconciler, local):
        _write_detail(local, "4", title="Draft", body="text")
        items = await reconciler.scan_local_detail_documents()
        assert _ids_and_provenance(items) == [("4", Provenance.LOCAL)]
        assert items[0].body == "text"

    async def test_document_on_both_stores(self, reconciler, primary, local):
        _write_detail(primary, "4", title="Shared")
        _write_detail(local, "4", title="Shared")
        items = await reconciler.scan_local_detail_documents()
        assert items[0].provenance == Provenance.BOTH

    async def test_unreachable_primary_means_local(
        self, reconciler, primary, local
    ):
        _write_detail(primary, "4", title="Shared")
        _write_detail(local, "4", title="Shared")
        primary.available = False
        items = await reconciler.scan_local_detail_documents()
        assert items[0].provenance == Provenance.LOCAL

    async def test_bad_document_skipped(self, reconciler, local, caplog):
        local.put("shared/materials/5/metadata.json", "{broken")
        _write_detail(local, "6", title="Good")
        items = await reconciler.scan_local_detail_documents()
        assert [i.id for i in items] == ["6"]
        assert "Skipping detail document" in caplog.text

    async def test_directory_name_used_when_id_missing(self, reconciler, local):
        local.put(
            "shared/materials/12/metadata.json", json.dumps({"title": "No id"})
        )
        items = await reconciler.scan_local_detail_documents()
        assert items[0].id == "12"

    async def test_id_in_primary_ledger_is_both(self, reconciler, local):
        _write_detail(local, "4", body="text")
        items = await reconciler.scan_local_detail_documents(
            primary_ids={"4"}
        )
        assert _ids_and_provenance(items) == [("4", Provenance.BOTH)]

    async def test_wrongly_typed_field_skipped(self, reconciler, local, caplog):
        _write_detail(local, "5", title=["not", "a", "title"])
        _write_detail(local, "6", title="Good")
        items = await reconciler.scan_local_detail_documents()
        assert [i.id for i in items] == ["6"]
        assert "Skipping detail document" in caplog.text

    async def test_missing_items_dir(self, reconciler):
        assert await reconciler.scan_local_detail_documents() == []


# ---------------------------------------------------------------------------
# merge_all()
# ---------------------------------------------------------------------------


class TestMergeAll:
    """Tests for CatalogReconciler.merge_all()."""

    def test_dedupes_and_sorts_numerically(self):
        merged = CatalogReconciler.merge_all(
            [_item("10"), _item("2")], [_item("2"), _item("1")]
        )
        assert [i.id for i in merged] == ["1", "2", "10"]

    def test_non_numeric_ids_sort_as_zero(self):
        merged = CatalogReconciler.merge_all([_item("3"), _item("abc"), _item("0")])
        assert [i.id for i in merged] == ["abc", "0", "3"]

    def test_rich_variant_preferred(self):
        plain = _item("1", title="Ledger")
        rich = _item("1", title="Document", body="full text")
        merged = CatalogReconciler.merge_all([plain], [rich])
        assert merged[0].title == "Document"
        assert merged[0].body == "full text"

    def test_first_rich_variant_kept(self):
        first = _item("1", title="First", attachments=["a.pdf"])
        second = _item("1", title="Second", body="x")
        merged = CatalogReconciler.merge_all([first], [second])
        assert merged[0].title == "First"

    @pytest.mark.parametrize(
        "provenances, expected",
        [
            ([Provenance.PRIMARY, Provenance.BOTH], Provenance.BOTH),
            ([Provenance.BOTH, Provenance.LOCAL], Provenance.LOCAL),
            ([Provenance.LOCAL, Provenance.PRIMARY], Provenance.LOCAL),
            ([Provenance.PRIMARY, Provenance.PRIMARY], Provenance.PRIMARY),
        ],
    )
    def test_provenance_precedence(self, provenances, expected):
        merged = CatalogReconciler.merge_all(
            *[[_item("1", provenance=p)] for p in provenances]
        )
        assert len(merged) == 1
        assert merged[0].provenance == expected

    def test_rich_fields_with_stronger_provenance(self):
        rich = _item("1", provenance=Provenance.BOTH, body="x")
        local = _item("1", provenance=Provenance.LOCAL)
        merged = CatalogReconciler.merge_all([rich], [local])
        assert merged[0].body == "x"
        assert merged[0].provenance == Provenance.LOCAL


# ---------------------------------------------------------------------------
# reconcile_catalog()
# ---------------------------------------------------------------------------


class TestReconcileCatalog:
    """End-to-end reconciliation against in-memory stores."""

    async def test_scenario_shared_and_local_only(
        self, reconciler, primary, local
    ):
        _write_ledger(primary, [{"id": "1", "updated_date": "2024-01-02"}])
        _write_ledger(
            local,
            [
                {"id": "1", "updated_date": "2024-01-01"},
                {"id": "2", "updated_date": "2024-01-01"},
            ],
        )
        items = await reconciler.reconcile_catalog()
        assert _ids_and_provenance(items) == [
            ("1", Provenance.BOTH),
            ("2", Provenance.LOCAL),
        ]

    async def test_primary_only_item(self, reconciler, primary):
        _write_ledger(primary, [{"id": "3", "title": "Server"}])
        items = await reconciler.reconcile_catalog()
        assert _ids_and_provenance(items) == [("3", Provenance.PRIMARY)]

    async def test_idempotent(self, reconciler, primary, local):
        _write_ledger(primary, [{"id": "1"}, {"id": "3"}])
        _write_ledger(local, [{"id": "1"}, {"id": "2"}])
        _write_detail(local, "4", body="draft")
        first = await reconciler.reconcile_catalog()
        second = await reconciler.reconcile_catalog()
        assert _ids_and_provenance(first) == _ids_and_provenance(second)

    async def test_no_duplicate_ids(self, reconciler, primary, local):
        _write_ledger(primary, [{"id": "1"}])
        _write_ledger(local, [{"id": "1"}])
        _write_detail(primary, "1", body="x")
        _write_detail(local, "1", body="x")
        items = await reconciler.reconcile_catalog()
        assert [i.id for i in items] == ["1"]
        assert items[0].provenance == Provenance.BOTH
        assert items[0].body == "x"

    async def test_local_detail_document_added(self, reconciler, primary, local):
        _write_ledger(primary, [{"id": "1"}])
        _write_ledger(local, [{"id": "1"}])
        _write_detail(local, "7", title="Unsynced", body="draft")
        items = await reconciler.reconcile_catalog()
        assert _ids_and_provenance(items) == [
            ("1", Provenance.BOTH),
            ("7", Provenance.LOCAL),
        ]

    async def test_shared_id_with_local_only_document_is_both(
        self, reconciler, primary, local
    ):
        _write_ledger(primary, [{"id": "1"}, {"id": "3"}])
        _write_ledger(local, [{"id": "1"}])
        _write_detail(local, "1", body="edited offline")
        _write_detail(local, "3", body="downloaded")
        items = await reconciler.reconcile_catalog()
        assert _ids_and_provenance(items) == [
            ("1", Provenance.BOTH),
            ("3", Provenance.BOTH),
        ]
        assert items[0].body == "edited offline"

    async def test_primary_check_failure_keeps_local_document(
        self, reconciler, primary, local, monkeypatch, caplog
    ):
        _write_detail(local, "9", title="Draft", body="text")
        real_exists = primary.exists

        def flaky_exists(path):
            if path.endswith("metadata.json"):
                raise OSError("share dropped")
            return real_exists(path)

        monkeypatch.setattr(primary, "exists", flaky_exists)
        items = await reconciler.reconcile_catalog()
        assert _ids_and_provenance(items) == [("9", Provenance.LOCAL)]
        assert items[0].body == "text"
        assert "share dropped" in caplog.text

    async def test_programming_error_not_hidden_by_fallback(
        self, reconciler, primary, local, monkeypatch
    ):
        _write_ledger(primary, [{"id": "1"}])
        _write_ledger(local, [{"id": "1"}])

        def broken_compare(primary_rows, local_rows):
            raise TypeError("bad comparison")

        monkeypatch.setattr(reconciler, "compare", broken_compare)
        with pytest.raises(TypeError, match="bad comparison"):
            await reconciler.reconcile_catalog()

    async def test_offline_falls_back_to_local(self, reconciler, primary, local):
        _write_ledger(primary, [{"id": "1"}])
        _write_ledger(local, [{"id": "1"}, {"id": "2"}])
        primary.available = False
        items = await reconciler.reconcile_catalog()
        assert _ids_and_provenance(items) == [
            ("1", Provenance.LOCAL),
            ("2", Provenance.LOCAL),
        ]

    async def test_offline_fallback_uses_row_tag(self, reconciler, primary, local):
        _write_ledger(
            local,
            [{"id": "1", "source": "server"}, {"id": "2", "source": "local"}],
        )
        primary.available = False
        items = await reconciler.reconcile_catalog()
        assert _ids_and_provenance(items) == [
            ("1", Provenance.PRIMARY),
            ("2", Provenance.LOCAL),
        ]

    async def test_primary_read_failure_falls_back(
        self, reconciler, primary, local, caplog
    ):
        _write_ledger(primary, [{"id": "1"}])
        _write_ledger(local, [{"id": "1"}, {"id": "2"}])
        primary.fail_reads.add("shared/materials.csv")
        items = await reconciler.reconcile_catalog()
        assert _ids_and_provenance(items) == [
            ("1", Provenance.BOTH),
            ("2", Provenance.BOTH),
        ]
        assert "falling back to local ledger" in caplog.text

    async def test_unreadable_local_ledger_is_empty(self, reconciler, primary, local):
        _write_ledger(primary, [{"id": "1"}])
        _write_ledger(local, [{"id": "2"}])
        local.fail_reads.add("shared/materials.csv")
        items = await reconciler.reconcile_catalog()
        assert _ids_and_provenance(items) == [("1", Provenance.PRIMARY)]

    async def test_both_stores_empty(self, reconciler):
        assert await reconciler.reconcile_catalog() == []

    async def test_filesystem_stores(self, fs_primary, fs_local, layout):
        (fs_primary.root / "shared").mkdir()
        (fs_primary.root / "shared" / "materials.csv").write_text(
            'id,title\n"1","Intro"\n', encoding="utf-8"
        )
        (fs_local.root / "shared").mkdir()
        (fs_local.root / "shared" / "materials.csv").write_text(
            'id,title\n"1","Intro"\n"2","Local"\n', encoding="utf-8"
        )
        reconciler = CatalogReconciler(fs_primary, fs_local, layout)
        items = await reconciler.reconcile_catalog()
        assert _ids_and_provenance(items) == [
            ("1", Provenance.BOTH),
            ("2", Provenance.LOCAL),
        ]


class TestCompareStores:
    """Tests for compare_stores()."""

    async def test_offline_primary_reported_as_empty(
        self, reconciler, primary, local
    ):
        _write_ledger(primary, [{"id": "1"}])
        _write_ledger(local, [{"id": "1"}])
        primary.available = False
        result = await reconciler.compare_stores()
        assert result.primary_count == 0
        assert [i.id for i in result.local_only] == ["1"]
