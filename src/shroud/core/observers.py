"""Explicit subscribe/unsubscribe observers.

Components own an ``Observers`` instance and emit events to it; consumers get a
``Subscription`` token back and cancel it when they stop listening.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

LOGGER = logging.getLogger(__name__)

EventT = TypeVar("EventT")


class Subscription:
    """Cancellation token returned by ``Observers.subscribe``."""

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel = cancel
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._cancel()


class Observers(Generic[EventT]):
    def __init__(self, name: str) -> None:
        self._name = name
        self._callbacks: dict[int, Callable[[EventT], None]] = {}
        self._next_id = 0

    def subscribe(self, callback: Callable[[EventT], None]) -> Subscription:
        token = self._next_id
        self._next_id += 1
        self._callbacks[token] = callback
        return Subscription(lambda: self._callbacks.pop(token, None))

    def emit(self, event: EventT) -> None:
        # Snapshot so callbacks may unsubscribe while being notified.
        for callback in list(self._callbacks.values()):
            try:
                callback(event)
            except Exception:
                LOGGER.exception("Observer callback failed for %s", self._name)

    def clear(self) -> None:
        self._callbacks.clear()

    def __len__(self) -> int:
        return len(self._callbacks)
