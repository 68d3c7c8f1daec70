"""Cooperative cancellation token shared across a turn."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, TypeVar

from agent_orchestrator.errors import CancellationError

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")

DEFAULT_CANCEL_REASON = "Operation cancelled by user."


class CancelToken:
    """Signal observed at every suspension point.

    The token is backed by an ``asyncio.Event``. Firing it is idempotent: the
    first reason wins and later calls are ignored.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._children: list[CancelToken] = []

    @property
    def cancelled(self) -> bool:
        """Whether the token has fired."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Reason passed to the first ``cancel`` call."""
        return self._reason

    def cancel(self, reason: str = DEFAULT_CANCEL_REASON) -> None:
        """Fire the token and every child token."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        for child in self._children:
            child.cancel(reason)

    def child(self) -> CancelToken:
        """Create a token that fires with this one but can also fire on its own."""
        token = CancelToken()
        if self.cancelled:
            token.cancel(self._reason or DEFAULT_CANCEL_REASON)
        else:
            self._children.append(token)
        return token

    async def wait(self) -> None:
        """Block until the token fires."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        """Raise ``CancellationError`` when the token has fired."""
        if self.cancelled:
            raise CancellationError(self._reason or DEFAULT_CANCEL_REASON)

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        When the token wins, the pending work is cancelled and
        ``CancellationError`` is raised. An already fired token closes
        ``awaitable`` without running it.
        """
        if self.cancelled:
            close = getattr(awaitable, "close", None)
            if callable(close):
                close()
            self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()
        if work.done():
            return work.result()
        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        raise CancellationError(self._reason or DEFAULT_CANCEL_REASON)
