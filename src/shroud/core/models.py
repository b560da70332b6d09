"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types. Frozen types are safe to hand to
the UI layer as snapshots.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional


class Origin(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Direction(str, Enum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"


class DisclosureState(str, Enum):
    HIDDEN = "hidden"
    HOLDING = "holding"
    REVEALED = "revealed"
    AUTO_BLURRING = "auto_blurring"


@dataclass(frozen=True)
class IdentityMapping:
    """One handle bound to one transport identity."""

    handle: str
    identity: str
    origin: Origin
    observed_at: float

    def to_dict(self) -> dict[str, Any]:
        return {"identity": self.identity, "origin": self.origin.value, "observed_at": self.observed_at}

    @classmethod
    def from_dict(cls, handle: str, data: dict[str, Any]) -> "IdentityMapping":
        return cls(
            handle=handle,
            identity=data["identity"],
            origin=Origin(data.get("origin", Origin.LOCAL.value)),
            observed_at=float(data.get("observed_at", 0.0)),
        )


@dataclass(frozen=True)
class ContactRequest:
    """A handshake request as seen by one side of the exchange."""

    id: str
    from_handle: str
    from_identity: str
    to_handle: str
    to_identity: Optional[str]
    created_at: float
    status: RequestStatus
    direction: Direction
    message: Optional[str] = None
    room_id: Optional[str] = None
    acceptance_sent: bool = False

    @property
    def is_resolved(self) -> bool:
        return self.status is not RequestStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["direction"] = self.direction.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContactRequest":
        return cls(
            id=data["id"],
            from_handle=data["from_handle"],
            from_identity=data["from_identity"],
            to_handle=data["to_handle"],
            to_identity=data.get("to_identity"),
            created_at=float(data.get("created_at", 0.0)),
            status=RequestStatus(data["status"]),
            direction=Direction(data.get("direction", Direction.INCOMING.value)),
            message=data.get("message"),
            room_id=data.get("room_id"),
            acceptance_sent=bool(data.get("acceptance_sent", False)),
        )


@dataclass(frozen=True)
class ReadReceipt:
    message_id: str
    room_id: str
    reader_handle: str
    read_at: float


@dataclass(frozen=True)
class TypingIndicator:
    room_id: str
    handle: str
    started_at: float


@dataclass(frozen=True)
class DisclosureSnapshot:
    """Read-only view of one message's disclosure session."""

    message_id: str
    state: DisclosureState
    revealed_at: Optional[float]
    remaining_seconds: Optional[float]


@dataclass(frozen=True)
class RegisteredUser:
    handle: str
    label: str
    registered_at: float
    is_online: bool = False
    identity: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RegisteredUser":
        return cls(
            handle=data["handle"],
            label=data["label"],
            registered_at=float(data.get("registered_at", 0.0)),
            is_online=bool(data.get("is_online", False)),
            identity=data.get("identity"),
        )


@dataclass(frozen=True)
class ContactNickname:
    handle: str
    nickname: str
    created_at: float
    updated_at: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContactNickname":
        return cls(
            handle=data["handle"],
            nickname=data["nickname"],
            created_at=float(data.get("created_at", 0.0)),
            updated_at=float(data.get("updated_at", 0.0)),
        )


@dataclass(frozen=True)
class InboundEnvelope:
    """A decoded transport message addressed to this client."""

    room_id: str
    sender_identity: str
    payload: Any
