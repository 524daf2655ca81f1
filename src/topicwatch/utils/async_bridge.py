"""Async-to-sync bridge for running cycles from synchronous callers."""

import asyncio
import concurrent.futures
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


def run_async_in_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a sync context safely.

    Handles the case where an event loop is already running (e.g. inside an
    async web handler) by running the coroutine on a fresh loop in a worker
    thread.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()
    return asyncio.run(coro)
