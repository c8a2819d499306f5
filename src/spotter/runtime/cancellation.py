"""
Cooperative cancellation shared between asyncio tasks and worker threads.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


class CancellationToken:
    """
    A one-way flag: once cancelled it stays cancelled.

    Backed by threading.Event so code running in asyncio.to_thread workers
    can poll it as well.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, error: Callable[[], BaseException]) -> None:
        if self._event.is_set():
            raise error()


def check_cancelled(
    token: Optional[CancellationToken], error: Callable[[], BaseException]
) -> None:
    """raise_if_cancelled() for an optional token."""
    if token is not None:
        token.raise_if_cancelled(error)


async def to_thread_settled(func: Callable[..., T], *args: Any) -> T:
    """
    asyncio.to_thread() that does not return early on cancellation.

    If the awaiting task is cancelled, the worker thread is waited for before
    CancelledError propagates, so locks held by the caller stay held until
    the blocking call has actually finished.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        while not future.done():
            try:
                await asyncio.wait({future})
            except asyncio.CancelledError:
                continue
        if not future.cancelled():
            future.exception()
        raise
