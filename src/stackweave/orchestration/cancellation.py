"""Cancellation token threaded through a provisioning run."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation signal shared by every task of a run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def cancel_after(self, delay: float) -> None:
        """Schedule cancellation on the running loop."""
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self.cancel)

    async def wait(self) -> None:
        await self._event.wait()


class Cancelled(Exception):
    """Internal marker raised by ``until_cancelled``."""


async def until_cancelled(awaitable: Awaitable[T], token: Optional[CancellationToken]) -> T:
    """Await ``awaitable`` unless ``token`` fires first.

    Raises Cancelled when the token wins. The awaited work is cancelled in
    that case, so callers must only pass awaitables that are safe to abandon
    (waits, never provisioner bodies).
    """
    work = asyncio.ensure_future(awaitable)
    if token is None:
        return await work
    if token.cancelled:
        work.cancel()
        raise Cancelled()

    cancel_waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({work, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        cancel_waiter.cancel()

    if work in done:
        return work.result()
    work.cancel()
    raise Cancelled()
