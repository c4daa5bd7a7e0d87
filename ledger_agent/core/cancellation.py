from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Optional, TypeVar

from .logging.logger import get_logger
from .schemas import OperationCancelled

T = TypeVar("T")


class CancellationReason(str, Enum):
    USER_CANCELLED = "user_cancelled"
    TIMEOUT = "timeout"
    SUPERSEDED = "superseded"


class CancellationToken:
    """Caller-held handle that aborts plan generation at its await points."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[CancellationReason] = None
        self._logger = get_logger("cancellation")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[CancellationReason]:
        return self._reason

    def cancel(self, reason: CancellationReason = CancellationReason.USER_CANCELLED) -> None:
        if self.cancelled:
            self._logger.debug("cancel requested twice; keeping %s", self._reason)
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self._reason.value if self._reason else "cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        The pending operation is cancelled and ``OperationCancelled`` raised
        when cancellation wins the race.
        """

        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        if task in done:
            return task.result()
        raise OperationCancelled(self._reason.value if self._reason else "cancelled")
