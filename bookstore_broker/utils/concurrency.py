"""
Async concurrency helpers.

The binding service is async, but the binding store and the identity issuer
are blocking. WorkerPool runs those calls on a bounded thread pool so the
event loop is never occupied while they execute.
"""

import asyncio
import contextvars
import os
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")

_POLL_INTERVAL = 0.001


def default_max_workers() -> int:
    # Mirrors ThreadPoolExecutor's default sizing heuristics.
    return min(32, (os.cpu_count() or 1) + 4)


class WorkerPool:
    """Bounded thread pool for blocking collaborator calls."""

    def __init__(self, max_workers: Optional[int] = None, thread_name_prefix: str = "binding-worker"):
        self.max_workers = max_workers or default_max_workers()
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix=thread_name_prefix
        )

    async def run(self, func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
        """
        Run a synchronous callable on the pool and await its result.

        The caller's context (correlation id and other context variables) is
        copied into the worker thread, the same way asyncio.to_thread does.
        Cancelling the await does not interrupt a call that already started.
        """
        ctx = contextvars.copy_context()
        future = self._executor.submit(partial(ctx.run, func, *args, **kwargs))
        # Polled: cross-thread loop wakeups can stall under some test harnesses
        try:
            while not future.done():
                await asyncio.sleep(_POLL_INTERVAL)
        except asyncio.CancelledError:
            future.cancel()
            raise
        return future.result()

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and release the worker threads."""
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
