"""Bounded worker pool for the blocking Keycloak calls.

The adapter is built on ``requests`` and blocks; async services hand every
adapter call to this pool so the event loop is never held by IdP I/O.
"""
from __future__ import annotations
import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_WORKERS = 16


class BlockingPool:
    """Thread pool joined back into asyncio through ``run_in_executor``.

    Cancelling the awaiting task cancels the asyncio future only. A call that
    already started in a worker thread runs until its HTTP timeout and its
    result is discarded.
    """

    def __init__(self, max_workers: int = DEFAULT_WORKERS):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="idp-worker")

    async def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``fn(*args, **kwargs)`` on a worker thread and await its result."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args, **kwargs))

    def shutdown(self, wait: bool = True) -> None:
        logger.debug(f"Shutting down IdP worker pool | max_workers={self.max_workers}")
        self._executor.shutdown(wait=wait)
