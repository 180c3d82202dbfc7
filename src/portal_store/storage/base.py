"""Storage port: the narrow interface every engine talks to.

Paths are POSIX-style strings relative to the store root (``""`` is the
root itself).  Methods are blocking; engines call them through
``run_sync`` so each call is a suspension point on the event loop.
Missing paths raise ``FileNotFoundError``; ``create_exclusive`` raises
``FileExistsError`` when the target is already there.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel


class FileStat(BaseModel):
    """Size and modification time of one store entry."""

    size: int
    mtime: float
    is_dir: bool = False

    model_config = {"frozen": True}


@runtime_checkable
class Storage(Protocol):
    """Operations the reconciliation, sync and lock layers need from a store."""

    @property
    def label(self) -> str:
        """Human-readable location used in logs and error messages."""
        ...  # pragma: no cover

    def is_available(self) -> bool:
        """Return ``True`` if the store root can currently be reached."""
        ...  # pragma: no cover

    def exists(self, path: str) -> bool: ...  # pragma: no cover

    def stat(self, path: str) -> FileStat: ...  # pragma: no cover

    def list_dir(self, path: str) -> list[str]:
        """Names of the direct children of *path*, sorted."""
        ...  # pragma: no cover

    def walk_files(self, path: str) -> list[str]:
        """Every file below *path*, as sorted paths relative to *path*."""
        ...  # pragma: no cover

    def read_text(self, path: str) -> str: ...  # pragma: no cover

    def write_text(self, path: str, content: str) -> None:
        """Replace *path* with *content*, creating parent directories."""
        ...  # pragma: no cover

    def copy_file(
        self, path: str, dest: "Storage", dest_path: str | None = None
    ) -> None:
        """Copy one file into *dest*, preserving its modification time."""
        ...  # pragma: no cover

    def copy_tree(
        self,
        path: str,
        dest: "Storage",
        dest_path: str | None = None,
        ignore_suffixes: tuple[str, ...] = (),
    ) -> None:
        """Recursively copy *path* into *dest*, overwriting existing files.

        Files whose name ends with one of *ignore_suffixes* are not copied.
        """
        ...  # pragma: no cover

    def remove_tree(self, path: str) -> None: ...  # pragma: no cover

    def remove_file(self, path: str) -> None: ...  # pragma: no cover

    def create_exclusive(self, path: str) -> None:
        """Atomically create an empty file; fail if it already exists."""
        ...  # pragma: no cover

    def make_dirs(self, path: str) -> None:
        """Create *path* and its parents; no-op when it already exists."""
        ...  # pragma: no cover
