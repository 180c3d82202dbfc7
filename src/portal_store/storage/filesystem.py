"""Filesystem implementation of the storage port.

Used for both the primary store (typically a mapped network share) and the
local store.  Copies go through ``shutil.copy2`` so modification times
survive the copy and a second smart sync sees equal mtimes.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path, PurePosixPath

from portal_store.file_handler import decode_file, replace_file
from portal_store.storage.base import FileStat, Storage


class FilesystemStorage:
    """Storage port backed by a directory tree.

    Args:
        root: Directory that relative store paths are resolved against.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser()

    def __repr__(self) -> str:
        return f"FilesystemStorage({str(self.root)!r})"

    @property
    def label(self) -> str:
        return str(self.root)

    def resolve(self, path: str) -> Path:
        """Map a store-relative path to an absolute path under ``root``.

        Raises:
            ValueError: If *path* is absolute or climbs out of the root.
        """
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts:
            raise ValueError(f"Store path must stay inside the root: {path}")
        return self.root.joinpath(*rel.parts)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        return self.root.is_dir()

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def stat(self, path: str) -> FileStat:
        target = self.resolve(path)
        st = target.stat()
        return FileStat(
            size=st.st_size, mtime=st.st_mtime, is_dir=target.is_dir()
        )

    def list_dir(self, path: str) -> list[str]:
        return sorted(child.name for child in self.resolve(path).iterdir())

    def walk_files(self, path: str) -> list[str]:
        base = self.resolve(path)
        if not base.is_dir():
            raise FileNotFoundError(f"Not a directory: {base}")
        return sorted(
            f.relative_to(base).as_posix()
            for f in base.rglob("*")
            if f.is_file()
        )

    def read_text(self, path: str) -> str:
        content, _ = decode_file(self.resolve(path))
        return content

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def write_text(self, path: str, content: str) -> None:
        replace_file(self.resolve(path), content)

    def copy_file(
        self, path: str, dest: Storage, dest_path: str | None = None
    ) -> None:
        target = self._dest_path(dest, dest_path or path)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self.resolve(path), target)

    def copy_tree(
        self,
        path: str,
        dest: Storage,
        dest_path: str | None = None,
        ignore_suffixes: tuple[str, ...] = (),
    ) -> None:
        target = self._dest_path(dest, dest_path or path)
        target.parent.mkdir(parents=True, exist_ok=True)
        ignore = None
        if ignore_suffixes:
            ignore = shutil.ignore_patterns(*(f"*{s}" for s in ignore_suffixes))
        shutil.copytree(
            self.resolve(path), target, dirs_exist_ok=True, ignore=ignore
        )

    def remove_tree(self, path: str) -> None:
        shutil.rmtree(self.resolve(path))

    def remove_file(self, path: str) -> None:
        self.resolve(path).unlink()

    def create_exclusive(self, path: str) -> None:
        fd = os.open(
            self.resolve(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644
        )
        os.close(fd)

    def make_dirs(self, path: str) -> None:
        self.resolve(path).mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _dest_path(dest: Storage, path: str) -> Path:
        if not isinstance(dest, FilesystemStorage):
            raise TypeError(
                f"Cannot copy from a filesystem store into {type(dest).__name__}"
            )
        return dest.resolve(path)
