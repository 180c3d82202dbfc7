"""Catalog formatting for the CLI.

- ``format_catalog`` -- one line per item with its provenance.
- ``format_comparison`` -- ledger comparison summary plus drifted ids.
- ``catalog_to_json`` -- list of plain dicts for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import CatalogItem, LedgerComparison

_PROVENANCE_LABELS = {
    "primary": "primary",
    "local": "LOCAL",
    "both": "both",
}


def format_catalog(items: list[CatalogItem]) -> str:
    """Render the reconciled catalog as aligned text lines."""
    if not items:
        return "Catalog is empty."

    width = max(len(item.id) for item in items)
    lines = [f"Catalog: {len(items)} items", ""]
    for item in items:
        label = _PROVENANCE_LABELS.get(item.provenance.value, item.provenance.value)
        title = item.title or "(untitled)"
        lines.append(f"  {item.id:>{width}}  [{label:<7}]  {title}")
    return "\n".join(lines)


def format_comparison(comparison: LedgerComparison) -> str:
    """Render a ledger comparison summary."""
    summary = comparison.summary()
    lines = [
        "Ledger comparison",
        f"  Primary rows:   {summary['primary_count']}",
        f"  Local rows:     {summary['local_count']}",
        f"  Primary only:   {summary['primary_only_count']}",
        f"  Local only:     {summary['local_only_count']}",
        f"  Both:           {summary['both_count']}",
        f"  Drifted:        {summary['drift_count']}",
    ]
    if comparison.local_only:
        lines.append("")
        lines.append("Local only (not on primary):")
        for item in comparison.local_only:
            lines.append(f"  {item.id}  {item.title}")
    if comparison.drift:
        lines.append("")
        lines.append("Drifted (primary wins):")
        for d in comparison.drift:
            lines.append(
                f"  {d.id}: primary={d.primary_updated_at or '-'} "
                f"local={d.local_updated_at or '-'}"
            )
    return "\n".join(lines)


def catalog_to_json(items: list[CatalogItem]) -> list[dict[str, Any]]:
    """Convert items to JSON-serialisable dicts (provenance as a string)."""
    return [item.model_dump(mode="json") for item in items]
