"""Decoding and atomic replacement of ledger and document files.

Ledgers on the primary store are often saved from a spreadsheet on a
Windows machine, so they may arrive as UTF-8 with a BOM or in a legacy
codepage such as cp932.  ``decode_file`` tries UTF-8 first and only then
asks charset-normalizer.  ``replace_file`` always writes UTF-8 through a
temporary sibling and ``os.replace`` so readers on other machines never
see a truncated ledger.
"""

import logging
import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "utf-8"


def decode_file(path: Path) -> tuple[str, str]:
    """Return ``(text, encoding)`` for *path*.

    A UTF-8 BOM is dropped.  Empty files and undetectable content fall
    back to UTF-8, the latter with replacement characters.
    """
    raw = path.read_bytes()
    if not raw:
        return "", DEFAULT_ENCODING
    try:
        return raw.decode("utf-8-sig"), DEFAULT_ENCODING
    except UnicodeDecodeError:
        pass

    best = from_bytes(raw).best()
    if best is None:
        logger.warning("Could not detect encoding of %s, decoding as UTF-8", path)
        return raw.decode(DEFAULT_ENCODING, errors="replace"), DEFAULT_ENCODING
    logger.debug("Decoded %s as %s", path, best.encoding)
    return str(best), best.encoding


def replace_file(path: Path, content: str) -> int:
    """Atomically replace *path* with UTF-8 *content*.

    Parent directories are created.  Returns the number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode(DEFAULT_ENCODING)

    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return len(data)
