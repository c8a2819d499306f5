"""
Lazy, cancellable asynchronous sequences backed by a producer task.

A TaskStream runs a producer coroutine in its own task. The producer hands
items to `emit`, which writes them into a bounded asyncio.Queue, so a slow
consumer pauses the producer. Failures travel through the same queue as a
terminal sentinel and are re-raised on the consumer side.

Consumer-side teardown (cancel(), aclose(), leaving `async with`, or the
consuming task itself being cancelled) sets the stream's CancellationToken
and cancels the producer task, so nothing keeps running after nobody reads.
A started stream that is dropped without teardown (for example after
`break` out of `async for`) is cancelled the same way when it is garbage
collected.

Usage:
    async with extractor.extract_frames(path, fps=5) as frames:
        async for frame in frames:
            ...
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .cancellation import CancellationToken

T = TypeVar("T")

Emit = Callable[[T], Awaitable[None]]
Producer = Callable[[Emit, CancellationToken], Awaitable[None]]


class _End:
    pass


class _Failure:
    def __init__(self, error: BaseException):
        self.error = error


_END = _End()


async def _run_producer(
    producer: Producer,
    queue: asyncio.Queue,
    token: CancellationToken,
    cancelled_error: Callable[[], BaseException],
    name: str,
) -> None:
    async def emit(item) -> None:
        token.raise_if_cancelled(cancelled_error)
        await queue.put(item)

    try:
        await producer(emit, token)
    except asyncio.CancelledError:
        logging.debug(f"{name}: producer cancelled")
        raise
    except Exception as e:
        await queue.put(_Failure(e))
    else:
        await queue.put(_END)


def _abandon(task: asyncio.Task, token: CancellationToken) -> None:
    """Called when a started stream is garbage collected."""
    token.cancel()
    if not task.done() and not task.get_loop().is_closed():
        task.cancel()


class TaskStream(Generic[T]):
    """
    Async iterator over items emitted by a background producer.

    Args:
        producer: Coroutine function `producer(emit, token)`. It should check
            `token` between units of work and return when done.
        cancelled_error: Factory for the error raised to the consumer after
            the stream has been cancelled.
        buffer_size: Maximum number of produced-but-unconsumed items.
        name: Used in log messages and the task name.
    """

    def __init__(
        self,
        producer: Producer,
        cancelled_error: Callable[[], BaseException],
        buffer_size: int = 1,
        name: str = "stream",
    ):
        self._producer = producer
        self._cancelled_error = cancelled_error
        self._buffer_size = max(1, buffer_size)
        self.name = name
        self.token = CancellationToken()

        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._finalizer: Optional[weakref.finalize] = None
        self._finished = False
        self._cancelled = False

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _ensure_started(self) -> None:
        if self._task is not None:
            return
        self._queue = asyncio.Queue(maxsize=self._buffer_size)
        self._task = asyncio.get_running_loop().create_task(
            _run_producer(self._producer, self._queue, self.token, self._cancelled_error, self.name),
            name=self.name,
        )
        # The task must not reference the stream, or this never fires.
        self._finalizer = weakref.finalize(self, _abandon, self._task, self.token)
        self._finalizer.atexit = False

    def __aiter__(self) -> "TaskStream[T]":
        return self

    async def __anext__(self) -> T:
        if self._cancelled:
            raise self._cancelled_error()
        if self._finished:
            raise StopAsyncIteration

        self._ensure_started()
        assert self._queue is not None
        try:
            item = await self._queue.get()
        except asyncio.CancelledError:
            self.cancel()
            raise

        if item is _END:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._finished = True
            raise item.error
        return item

    def cancel(self) -> None:
        """Stop the producer; the next __anext__ raises the cancellation error."""
        if self._finished or self._cancelled:
            return
        self._cancelled = True
        self.token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logging.info(f"{self.name}: cancelled")

    async def aclose(self) -> None:
        """Cancel (if still running) and wait for the producer task to exit."""
        if not self._finished:
            self.cancel()
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    async def __aenter__(self) -> "TaskStream[T]":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
