"""Async helpers shared by the engines and the lock layer."""

from .async_utils import run_sync

__all__ = ["run_sync"]
