"""
RunContext — cooperative cancellation token for one scheduler run cycle.

Every suspension point in the delivery pipeline (the webhook call and the
backoff wait) races against the context instead of being force-cancelled.
A fresh context is created on every Scheduler.start().
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Optional

_cycle_ids = itertools.count(1)


class RunContext:
    """Cancellation handle shared by the loop and its delivery units."""

    def __init__(self) -> None:
        self.cycle_id = next(_cycle_ids)
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def wait_cancelled(self) -> None:
        await self._cancelled.wait()

    async def wait(self, timeout: Optional[float]) -> bool:
        """
        Sleep for ``timeout`` seconds unless cancelled first.

        Returns True if the context was cancelled, False if the full
        delay elapsed.
        """
        if self.cancelled:
            return True
        if timeout is not None and timeout <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def __repr__(self) -> str:
        return f"RunContext(cycle={self.cycle_id}, cancelled={self.cancelled})"
