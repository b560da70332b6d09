from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from shroud.core.errors import StorageError, TransportError


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class ManualTimer:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-time scheduler: callbacks fire only inside advance()."""

    def __init__(self) -> None:
        self.time = 0.0
        self._timers: list[ManualTimer] = []
        self._seq = 0

    def now(self) -> float:
        return self.time

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.time + delay, self._seq, callback)
        self._seq += 1
        self._timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [timer for timer in self._timers if not timer.cancelled and timer.when <= target]
            if not due:
                break
            timer = min(due, key=lambda item: (item.when, item.seq))
            self._timers.remove(timer)
            self.time = timer.when
            timer.callback()
        self.time = target
        self._timers = [timer for timer in self._timers if not timer.cancelled]

    def pending(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled)


class MemoryStore:
    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.writes: list[str] = []
        self.fail_reads = False
        self.fail_writes = False

    def get(self, key: str) -> Optional[bytes]:
        if self.fail_reads:
            raise StorageError(f"failed to read {key}")
        return self.data.get(key)

    def set(self, key: str, value: bytes) -> None:
        if self.fail_writes:
            raise StorageError(f"failed to write {key}")
        self.data[key] = value
        self.writes.append(key)

    def delete(self, key: str) -> None:
        if self.fail_writes:
            raise StorageError(f"failed to delete {key}")
        self.data.pop(key, None)


class FakeTransport:
    """Records payloads instead of delivering them."""

    def __init__(self, identity: Optional[str]) -> None:
        self.identity = identity
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.rooms: list[str] = []
        self.fail_send = False

    async def current_identity(self) -> Optional[str]:
        return self.identity

    async def create_direct_room(self, identity: str) -> str:
        room_id = "room:" + "|".join(sorted([self.identity or "", identity]))
        self.rooms.append(room_id)
        return room_id

    async def send_payload(self, room_id: str, payload: dict[str, Any]) -> None:
        if self.fail_send:
            raise TransportError(f"send to {room_id} failed")
        self.sent.append((room_id, payload))


class FakeDirectory:
    def __init__(self, snapshot: Any = None, *, delay: float = 0.0, error: Optional[Exception] = None) -> None:
        self.snapshot = snapshot if snapshot is not None else {}
        self.delay = delay
        self.error = error
        self.calls = 0

    async def fetch(self) -> Any:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.snapshot
