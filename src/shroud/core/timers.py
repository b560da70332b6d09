"""Single-timer slots.

A TimerSlot owns at most one live scheduler handle. Arming always cancels the
previous handle first, and a generation counter suppresses any callback that
belongs to a superseded arm.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from shroud.core.ports import SchedulerPort, TimerHandle

LOGGER = logging.getLogger(__name__)


class TimerSlot:
    """One cancellable timer for one stateful entity."""

    def __init__(self, scheduler: SchedulerPort, name: str = "timer") -> None:
        self._scheduler = scheduler
        self._name = name
        self._handle: Optional[TimerHandle] = None
        self._generation = 0

    @property
    def active(self) -> bool:
        return self._handle is not None

    def arm(self, delay: float, callback: Callable[[], None]) -> None:
        self.cancel()
        generation = self._generation

        def _fire() -> None:
            if generation != self._generation:
                LOGGER.debug("Suppressed stale %s callback", self._name)
                return
            self._handle = None
            self._generation += 1
            callback()

        self._handle = self._scheduler.call_later(max(0.0, delay), _fire)

    def cancel(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
