"""Storage port, its filesystem implementation and the shared store layout."""

from .base import FileStat, Storage
from .filesystem import FilesystemStorage
from .layout import StoreLayout

__all__ = ["FileStat", "FilesystemStorage", "Storage", "StoreLayout"]
