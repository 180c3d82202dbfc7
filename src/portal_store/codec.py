"""Minimal ledger (CSV) and document (JSON) codec.

Ledgers are header-plus-rows CSV files with every value quoted on write.
Parsing is tolerant: blank lines and CRLF/CR line endings are accepted, and
a row whose field count differs from the header is skipped with a warning
so one bad line never hides the rest of the catalog.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from typing import Any, Iterable

from portal_store.errors import DocumentFormatError, LedgerFormatError

logger = logging.getLogger(__name__)

LedgerRow = dict[str, str]


def parse_ledger(text: str, source: str = "<ledger>") -> list[LedgerRow]:
    """Parse ledger text into a list of row dicts keyed by header name.

    Args:
        text: Full CSV content.
        source: Label used in log messages (usually the file path).

    Returns:
        Rows in file order.  An empty or header-only file yields ``[]``.

    Raises:
        LedgerFormatError: If the header row names a column more than once.
    """
    text = text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    reader = csv.reader(io.StringIO(text), skipinitialspace=True)

    header: list[str] | None = None
    rows: list[LedgerRow] = []
    for values in reader:
        if not any(v.strip() for v in values):
            continue
        if header is None:
            header = [h.strip() for h in values]
            duplicates = sorted({h for h in header if h and header.count(h) > 1})
            if duplicates:
                raise LedgerFormatError(
                    f"{source}: duplicate column names in header: "
                    + ", ".join(repr(d) for d in duplicates)
                )
            continue
        if len(values) != len(header):
            logger.warning(
                "Skipping malformed row at line %d in %s: "
                "expected %d columns, got %d",
                reader.line_num,
                source,
                len(header),
                len(values),
            )
            continue
        rows.append(
            {name: value.strip() for name, value in zip(header, values)}
        )
    return rows


def render_ledger(
    rows: Iterable[LedgerRow], fieldnames: list[str] | None = None
) -> str:
    """Serialize rows to CSV text with a header and fully quoted values.

    Column order is *fieldnames* if given, followed by any extra keys in
    the order they first appear in *rows*.
    """
    rows = list(rows)
    columns = list(fieldnames or [])
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    if not columns:
        return ""

    buf = io.StringIO()
    writer = csv.DictWriter(
        buf,
        fieldnames=columns,
        quoting=csv.QUOTE_ALL,
        lineterminator="\n",
        restval="",
    )
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()


def parse_document(text: str, source: str = "<document>") -> Any:
    """Decode a JSON document.

    Raises:
        DocumentFormatError: If *text* is not valid JSON.
    """
    try:
        return json.loads(text.lstrip("\ufeff"))
    except json.JSONDecodeError as exc:
        raise DocumentFormatError(f"{source}: {exc}") from exc


def render_document(data: Any) -> str:
    """Encode a JSON document the way the portal writes them (2-space indent)."""
    return json.dumps(data, indent=2, ensure_ascii=False)
