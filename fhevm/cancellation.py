"""Cooperative cancellation for long-running resolution and initialization paths."""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from .errors import AbortError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CancellationToken:
    """
    One-shot cancellation signal.

    ``check()`` raises AbortError once cancelled. ``run(awaitable)`` races an
    awaitable against the signal and cancels the in-flight task when the
    signal wins, so no probe is left running after teardown.
    """

    def __init__(self):
        self._cancelled = False
        self._reason: Optional[str] = None
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled"):
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        if self._event is not None:
            self._event.set()
        logger.debug(f"Cancellation requested: {reason}")

    def check(self):
        if self._cancelled:
            raise AbortError(f"FHEVM operation was cancelled ({self._reason})")

    def _get_event(self) -> asyncio.Event:
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    async def run(self, awaitable: Awaitable[T]) -> T:
        if self._cancelled and asyncio.iscoroutine(awaitable):
            awaitable.close()
        self.check()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._get_event().wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if not task.done():
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                # outcome of an abandoned probe is irrelevant
                pass
            self.check()

        return task.result()
