"""Cooperative cancellation shared by fetches, provider streams and subprocesses."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class AbortedError(Exception):
    """Raised when a caller cancels an operation. Deliberately not a TldrError."""

    def __init__(self, message: str = "Aborted"):
        super().__init__(message)


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AbortedError()

    async def wait(self) -> None:
        await self._event.wait()


def check(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()


async def run_cancellable(awaitable: Awaitable[T], token: Optional[CancellationToken]) -> T:
    """Await `awaitable`, tearing it down and raising AbortedError if `token` fires first.

    The operation runs as its own task so that cancelling it unwinds its
    `async with` / `finally` blocks (closing sockets, killing processes).
    """
    if token is None:
        return await awaitable

    if token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise AbortedError()

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    if task in done:
        return task.result()
    raise AbortedError()
