"""Wire payloads carried over the transport.

Every payload is a JSON object with a ``type`` discriminant. Known types are
validated strictly; unknown types decode to ``None`` so newer peers never break
older clients.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from shroud.core.errors import ValidationError

CONTACT_REQUEST = "contact_request"
CONTACT_ACCEPTED = "contact_accepted"

MAX_MESSAGE_CHARS = 500


@dataclass(frozen=True)
class ContactRequestPayload:
    from_handle: str
    to_handle: str
    request_id: str
    message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "type": CONTACT_REQUEST,
            "fromHandle": self.from_handle,
            "toHandle": self.to_handle,
            "requestId": self.request_id,
        }
        if self.message is not None:
            data["message"] = self.message
        return data


@dataclass(frozen=True)
class ContactAcceptedPayload:
    from_handle: str
    to_handle: str
    request_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": CONTACT_ACCEPTED,
            "fromHandle": self.from_handle,
            "toHandle": self.to_handle,
            "requestId": self.request_id,
        }


Payload = Union[ContactRequestPayload, ContactAcceptedPayload]


def _required_str(data: dict[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"payload field {field!r} must be a non-empty string")
    return value.strip()


def decode_json(raw: "str | bytes") -> Optional[dict[str, Any]]:
    """Decode transport text into a JSON object, or None for ordinary chat text."""

    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        return None
    return data


def parse_payload(data: Any) -> Optional[Payload]:
    """Parse a decoded payload.

    Returns None for unknown types and raises ValidationError when a known
    type is malformed.
    """

    if not isinstance(data, dict):
        raise ValidationError("payload must be a JSON object")
    kind = data.get("type")

    if kind == CONTACT_REQUEST:
        message = data.get("message")
        if message is not None:
            if not isinstance(message, str):
                raise ValidationError("payload field 'message' must be a string")
            message = message[:MAX_MESSAGE_CHARS]
        return ContactRequestPayload(
            from_handle=_required_str(data, "fromHandle"),
            to_handle=_required_str(data, "toHandle"),
            request_id=_required_str(data, "requestId"),
            message=message,
        )

    if kind == CONTACT_ACCEPTED:
        return ContactAcceptedPayload(
            from_handle=_required_str(data, "fromHandle"),
            to_handle=_required_str(data, "toHandle"),
            request_id=_required_str(data, "requestId"),
        )

    return None


def encode_payload(payload: Payload) -> str:
    return json.dumps(payload.to_dict(), separators=(",", ":"), ensure_ascii=False)
