"""Shared pytest fixtures for portal-store tests."""

from __future__ import annotations

import threading

import pytest

from portal_store.config_schema import (
    LocksConfig,
    StoresConfig,
    UnifiedConfig,
)
from portal_store.storage.base import FileStat
from portal_store.storage.filesystem import FilesystemStorage
from portal_store.storage.layout import StoreLayout

_ENV_VARS = (
    "PORTAL_PRIMARY_ROOT",
    "PORTAL_LOCAL_ROOT",
    "PORTAL_LOCK_RETRIES",
    "PORTAL_WATCHDOG_TIMEOUT",
    "PORTAL_STALE_LOCK_SECONDS",
    "PORTAL_STORE_CONFIG",
    "LOG_LEVEL",
    "LOG_FILE",
)


class FakeStorage:
    """In-memory storage port.

    Files are kept as ``path -> (text, mtime)``.  Writes stamp a
    monotonically increasing fake clock; copies keep the source mtime the
    way ``shutil.copy2`` does.  ``fail_reads``, ``fail_writes``,
    ``fail_copies`` and ``fail_removes`` hold paths whose operation raises
    ``OSError``.
    """

    def __init__(self, label: str = "fake", available: bool = True) -> None:
        self._label = label
        self.available = available
        self.files: dict[str, tuple[str, float]] = {}
        self.dirs: set[str] = set()
        self.clock = 1000.0
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()
        self.fail_copies: set[str] = set()
        self.fail_removes: set[str] = set()
        self.copied: list[str] = []
        self._mutex = threading.Lock()

    def __repr__(self) -> str:
        return f"FakeStorage({self._label!r})"

    # -- test helpers ---------------------------------------------------

    def put(self, path: str, text: str, mtime: float | None = None) -> None:
        """Create or replace a file without going through the port."""
        with self._mutex:
            self._put(path, text, mtime)

    def text(self, path: str) -> str:
        return self.files[path][0]

    def mtime(self, path: str) -> float:
        return self.files[path][1]

    # -- storage port ---------------------------------------------------

    @property
    def label(self) -> str:
        return self._label

    def is_available(self) -> bool:
        return self.available

    def exists(self, path: str) -> bool:
        with self._mutex:
            return path == "" or path in self.files or path in self.dirs

    def stat(self, path: str) -> FileStat:
        with self._mutex:
            if path in self.files:
                text, mtime = self.files[path]
                return FileStat(size=len(text.encode("utf-8")), mtime=mtime)
            if path in self.dirs:
                return FileStat(size=0, mtime=0.0, is_dir=True)
        raise FileNotFoundError(path)

    def list_dir(self, path: str) -> list[str]:
        with self._mutex:
            self._require_dir(path)
            prefix = f"{path}/" if path else ""
            names = {
                entry[len(prefix):].split("/", 1)[0]
                for entry in list(self.files) + list(self.dirs)
                if entry.startswith(prefix) and entry != path
            }
        return sorted(names)

    def walk_files(self, path: str) -> list[str]:
        with self._mutex:
            self._require_dir(path)
            prefix = f"{path}/" if path else ""
            return sorted(
                f[len(prefix):] for f in self.files if f.startswith(prefix)
            )

    def read_text(self, path: str) -> str:
        with self._mutex:
            if path in self.fail_reads:
                raise OSError(f"read failed: {path}")
            if path not in self.files:
                raise FileNotFoundError(path)
            return self.files[path][0]

    def write_text(self, path: str, content: str) -> None:
        with self._mutex:
            if path in self.fail_writes:
                raise OSError(f"write failed: {path}")
            self._put(path, content, None)

    def copy_file(self, path, dest, dest_path=None) -> None:
        with self._mutex:
            if path in self.fail_copies:
                raise OSError(f"copy failed: {path}")
            if path not in self.files:
                raise FileNotFoundError(path)
            text, mtime = self.files[path]
        dest.put(dest_path or path, text, mtime)
        self.copied.append(path)

    def copy_tree(self, path, dest, dest_path=None, ignore_suffixes=()) -> None:
        target = dest_path or path
        for rel in self.walk_files(path):
            if rel.endswith(tuple(ignore_suffixes)):
                continue
            self.copy_file(f"{path}/{rel}", dest, f"{target}/{rel}")

    def remove_tree(self, path: str) -> None:
        with self._mutex:
            self._require_dir(path)
            prefix = f"{path}/"
            for f in [f for f in self.files if f.startswith(prefix)]:
                del self.files[f]
            self.dirs = {
                d for d in self.dirs if d != path and not d.startswith(prefix)
            }

    def remove_file(self, path: str) -> None:
        with self._mutex:
            if path in self.fail_removes:
                raise OSError(f"remove failed: {path}")
            if path not in self.files:
                raise FileNotFoundError(path)
            del self.files[path]

    def create_exclusive(self, path: str) -> None:
        with self._mutex:
            if path in self.files:
                raise FileExistsError(path)
            self._put(path, "", None)

    def make_dirs(self, path: str) -> None:
        with self._mutex:
            self._add_dirs(path)

    # -- internals ------------------------------------------------------

    def _put(self, path: str, text: str, mtime: float | None) -> None:
        if mtime is None:
            self.clock += 1
            mtime = self.clock
        self.files[path] = (text, mtime)
        self._add_dirs(path.rsplit("/", 1)[0] if "/" in path else "")

    def _add_dirs(self, path: str) -> None:
        parts = [p for p in path.split("/") if p]
        for i in range(1, len(parts) + 1):
            self.dirs.add("/".join(parts[:i]))

    def _require_dir(self, path: str) -> None:
        if path and path not in self.dirs:
            raise FileNotFoundError(f"Not a directory: {path}")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's PORTAL_* and LOG_* settings out of tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def layout():
    return StoreLayout()


@pytest.fixture
def primary():
    return FakeStorage("primary")


@pytest.fixture
def local():
    return FakeStorage("local")


@pytest.fixture
def fs_primary(tmp_path):
    root = tmp_path / "primary"
    root.mkdir()
    return FilesystemStorage(root)


@pytest.fixture
def fs_local(tmp_path):
    root = tmp_path / "local"
    root.mkdir()
    return FilesystemStorage(root)


@pytest.fixture
def config(tmp_path):
    """Config with fast lock timings and throwaway roots."""
    return UnifiedConfig(
        stores=StoresConfig(
            primary_root=str(tmp_path / "primary"),
            local_root=str(tmp_path / "local"),
        ),
        locks=LocksConfig(retry_delay=0.001, watchdog_timeout=5.0),
    )
