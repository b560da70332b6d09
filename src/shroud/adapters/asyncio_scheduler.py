"""asyncio-backed scheduler adapter.

Implements the core SchedulerPort with ``loop.call_later`` so every timer is a
plain cancellable TimerHandle on the session's event loop.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional


class AsyncioScheduler:
    """Scheduler bound to one running event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        # loop.time() is monotonic; fall back to the same clock before a loop exists.
        if self._loop is None:
            return time.monotonic()
        return self._loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._get_loop().call_later(delay, callback)
