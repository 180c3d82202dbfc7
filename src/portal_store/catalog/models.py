"""Pydantic models for catalog reconciliation.

- ``Provenance``: which store(s) an item is known from.
- ``CatalogItem``: one reconciled catalog entry.
- ``LedgerDrift``: an id whose ``updated_at`` differs between ledgers.
- ``LedgerComparison``: result of comparing the two ledgers.
- ``DeleteScope`` / ``LedgerWriteResult``: ledger mutation contracts.

Ledger rows written by different portal versions use different column
names for the same field (``category_id`` vs ``category``, ``updated_date``
vs ``updated_at``), so the ``from_*`` constructors accept every alias and
``to_ledger_row`` always writes the canonical names in ``LEDGER_FIELDS``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, Field, field_validator

from portal_store.outcome import WriteOutcome

LEDGER_FIELDS = [
    "id",
    "title",
    "description",
    "category_id",
    "type",
    "file_path",
    "difficulty",
    "estimated_hours",
    "created_date",
    "updated_date",
    "attachments",
]

_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "uuid"),
    "title": ("title",),
    "description": ("description",),
    "category": ("category_id", "category"),
    "type": ("type",),
    "difficulty": ("difficulty",),
    "estimated_hours": ("estimated_hours",),
    "created_at": ("created_date", "created_at", "created"),
    "updated_at": ("updated_date", "updated_at", "updated"),
    "content_ref": ("file_path", "content_ref"),
}

# Row/document keys that carry a provenance hint from an earlier export.
_PROVENANCE_TAGS = ("provenance", "data_source", "dataSource", "source")


class Provenance(str, Enum):
    """Which store(s) an item is known from.  Never persisted."""

    PRIMARY = "primary"
    LOCAL = "local"
    BOTH = "both"

    @property
    def precedence(self) -> int:
        """Merge precedence: an unsynced local edit outranks everything."""
        return _PRECEDENCE[self]

    @classmethod
    def from_tag(cls, value: str | None) -> "Provenance | None":
        """Interpret a provenance hint such as ``"server"`` or ``"local"``."""
        if not value:
            return None
        normalized = value.strip().lower()
        if normalized == "server":
            return cls.PRIMARY
        try:
            return cls(normalized)
        except ValueError:
            return None


_PRECEDENCE = {Provenance.PRIMARY: 1, Provenance.BOTH: 2, Provenance.LOCAL: 3}


def _pick(data: Mapping[str, Any], field: str) -> Any:
    for key in _ALIASES[field]:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _attachment_names(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(";") if part.strip()]
    names = []
    for entry in value:
        if isinstance(entry, Mapping):
            name = (
                entry.get("filename") or entry.get("name") or entry.get("path")
            )
        else:
            name = entry
        if name:
            names.append(str(name))
    return names


class CatalogItem(BaseModel):
    """One catalog entry as seen by the portal after reconciliation."""

    id: str
    title: str = ""
    description: str = ""
    category: str = ""
    type: str = ""
    difficulty: str = ""
    estimated_hours: float | None = None
    created_at: str = ""
    updated_at: str = ""
    content_ref: str = ""
    attachments: list[str] = Field(default_factory=list)
    body: str = ""
    tags: list[str] = Field(default_factory=list)
    author: str = ""
    provenance: Provenance = Provenance.PRIMARY

    model_config = {"frozen": True}

    @field_validator("estimated_hours", mode="before")
    @classmethod
    def _parse_hours(cls, value: Any) -> float | None:
        if value in (None, ""):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @field_validator("tags", mode="before")
    @classmethod
    def _parse_tags(cls, value: Any) -> list[str]:
        if not value:
            return []
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return [str(t) for t in value]

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_ledger_row(
        cls, row: Mapping[str, Any], provenance: Provenance
    ) -> "CatalogItem":
        """Build an item from a ledger row (any supported column naming)."""
        return cls(
            id=str(_pick(row, "id") or ""),
            title=_pick(row, "title") or "",
            description=_pick(row, "description") or "",
            category=_pick(row, "category") or "",
            type=_pick(row, "type") or "",
            difficulty=_pick(row, "difficulty") or "",
            estimated_hours=_pick(row, "estimated_hours"),
            created_at=_pick(row, "created_at") or "",
            updated_at=_pick(row, "updated_at") or "",
            content_ref=_pick(row, "content_ref") or "",
            attachments=_attachment_names(row.get("attachments")),
            provenance=provenance,
        )

    @classmethod
    def from_document(
        cls,
        doc: Mapping[str, Any],
        item_id: str,
        provenance: Provenance,
    ) -> "CatalogItem":
        """Build an item from a detail document.

        *item_id* (the item directory name) is used when the document does
        not carry its own id.
        """
        body = doc.get("body") or doc.get("content") or ""
        author = doc.get("author") or ""
        if isinstance(author, Mapping):
            author = author.get("display_name") or author.get("name") or ""
        return cls(
            id=str(_pick(doc, "id") or item_id),
            title=_pick(doc, "title") or "",
            description=_pick(doc, "description") or "",
            category=str(_pick(doc, "category") or ""),
            type=_pick(doc, "type") or "",
            difficulty=str(_pick(doc, "difficulty") or ""),
            estimated_hours=_pick(doc, "estimated_hours"),
            created_at=_pick(doc, "created_at") or "",
            updated_at=_pick(doc, "updated_at") or "",
            content_ref=_pick(doc, "content_ref") or "",
            attachments=_attachment_names(
                doc.get("attachments") or doc.get("files")
            ),
            body=body if isinstance(body, str) else str(body),
            tags=doc.get("tags") or [],
            author=str(author),
            provenance=provenance,
        )

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def is_rich(self) -> bool:
        """``True`` when the item carries detail-document content."""
        return bool(self.body or self.attachments)

    @property
    def sort_key(self) -> int:
        """Numeric id used for ordering; non-numeric ids sort as 0."""
        try:
            return int(self.id)
        except ValueError:
            return 0

    def to_ledger_row(self) -> dict[str, str]:
        """Project the item onto the canonical ledger columns."""
        hours = self.estimated_hours
        if hours is None:
            hours_text = ""
        elif float(hours).is_integer():
            hours_text = str(int(hours))
        else:
            hours_text = str(hours)
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category_id": self.category,
            "type": self.type,
            "file_path": self.content_ref,
            "difficulty": self.difficulty,
            "estimated_hours": hours_text,
            "created_date": self.created_at,
            "updated_date": self.updated_at,
            "attachments": ";".join(self.attachments),
        }


def provenance_tag(row: Mapping[str, Any]) -> Provenance | None:
    """Return the provenance hint carried by a row, if any."""
    for key in _PROVENANCE_TAGS:
        tag = Provenance.from_tag(row.get(key))
        if tag is not None:
            return tag
    return None


def row_id(row: Mapping[str, Any]) -> str:
    """Return the id of a ledger row (``id`` or legacy ``uuid``), or ``""``."""
    return str(_pick(row, "id") or "")


def row_updated_at(row: Mapping[str, Any]) -> str:
    return str(_pick(row, "updated_at") or "")


class LedgerDrift(BaseModel):
    """An id present in both ledgers with differing ``updated_at``."""

    id: str
    primary_updated_at: str
    local_updated_at: str

    model_config = {"frozen": True}


class LedgerComparison(BaseModel):
    """Partition of two ledgers by id.

    ``both`` items carry the primary row's fields; local values for shared
    ids are only reflected in ``drift``.
    """

    primary_only: list[CatalogItem] = Field(default_factory=list)
    local_only: list[CatalogItem] = Field(default_factory=list)
    both: list[CatalogItem] = Field(default_factory=list)
    drift: list[LedgerDrift] = Field(default_factory=list)
    primary_count: int = 0
    local_count: int = 0

    model_config = {"frozen": True}

    def summary(self) -> dict[str, int]:
        """Counts per partition, as shown by ``portal-store compare``."""
        return {
            "primary_count": self.primary_count,
            "local_count": self.local_count,
            "primary_only_count": len(self.primary_only),
            "local_only_count": len(self.local_only),
            "both_count": len(self.both),
            "drift_count": len(self.drift),
        }


class DeleteScope(str, Enum):
    """Which store(s) a catalog deletion applies to."""

    LOCAL = "local"
    PRIMARY = "primary"
    BOTH = "both"


class LedgerWriteResult(BaseModel):
    """Outcome of one ledger mutation.

    Attributes:
        item_id: Id of the item that was written or removed.
        primary: Outcome of the primary-store write.
        local: Outcome of the local-store write (the mirror when the
            primary write happened, the only write otherwise).
    """

    item_id: str
    primary: WriteOutcome
    local: WriteOutcome

    model_config = {"frozen": True}
