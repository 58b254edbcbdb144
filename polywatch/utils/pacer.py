"""
Pacer — enforces a minimum spacing between successive upstream calls.

The upstream APIs publish no rate limits, so every component that loops over
records or markets waits on a Pacer instead of sleeping ad hoc. The first
call passes immediately; later calls wait until *interval* seconds have
elapsed since the previous one.
"""
from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


class Pacer:
    def __init__(
        self,
        interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None

    async def wait(self) -> None:
        """Block until the next call is allowed, then record it."""
        if self._last is not None and self.interval > 0:
            remaining = self.interval - (self._clock() - self._last)
            if remaining > 0:
                await self._sleep(remaining)
        self._last = self._clock()

    def reset(self) -> None:
        """Let the next call through immediately (e.g. at the start of a new batch)."""
        self._last = None
