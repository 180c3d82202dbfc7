"""Async utilities for bridging blocking storage calls into the event loop."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a blocking function in a worker thread without stalling the loop.

    Every storage read, write, stat and copy goes through here, so each one
    is a suspension point for other tasks on the loop.

    Example:
        stat = await run_sync(storage.stat, "shared/materials.csv")
    """
    return await asyncio.to_thread(func, *args, **kwargs)
