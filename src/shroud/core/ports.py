"""Ports (interfaces) used by the core.

Ports define the minimal contracts for the transport, secure storage, remote
directory and timer adapters so that the core can be reused with different
backends.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol


class TransportPort(Protocol):
    """Messaging transport operations consumed by the handshake.

    Implementations raise ``TransportError`` on failure and never retry.
    """

    async def send_payload(self, room_id: str, payload: dict[str, Any]) -> None:
        ...

    async def create_direct_room(self, identity: str) -> str:
        ...

    async def current_identity(self) -> Optional[str]:
        ...


class SecureStorePort(Protocol):
    """Opaque durable key-value store for caches that survive restarts."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class DirectoryPort(Protocol):
    """Remote handle directory; returns the decoded JSON document."""

    async def fetch(self) -> Any:
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class SchedulerPort(Protocol):
    """Clock and cancellable delayed callbacks."""

    def now(self) -> float:
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...
