"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core handshake: a Telegram
message becomes an InboundEnvelope only when its text is a typed JSON payload.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from telethon.tl.custom import Message

from shroud.core.errors import ValidationError
from shroud.core.handles import identity_for_user
from shroud.core.models import InboundEnvelope
from shroud.core.payloads import decode_json

LOGGER = logging.getLogger(__name__)

ROOM_PREFIX = "chat_id:"


def room_id_for_chat(chat_id: int) -> str:
    return f"{ROOM_PREFIX}{chat_id}"


def chat_id_from_room(room_id: str) -> int:
    if not room_id.startswith(ROOM_PREFIX):
        raise ValidationError(f"room id must start with {ROOM_PREFIX}: {room_id!r}")
    try:
        return int(room_id[len(ROOM_PREFIX) :])
    except ValueError:
        raise ValidationError(f"room id is not numeric: {room_id!r}") from None


def sender_identity_from_message(message: Message) -> Optional[str]:
    """Normalize the sender identity using the single rule enforced across the app."""

    sender: Any = getattr(message, "sender", None)
    username = getattr(sender, "username", None)
    sender_id = getattr(message, "sender_id", None)
    try:
        return identity_for_user(username, sender_id)
    except ValidationError:
        return None


def build_envelope(message: Message) -> Optional[InboundEnvelope]:
    """Build an InboundEnvelope from a Telethon Message, or None for chat text."""

    text = message.raw_text or ""
    payload = decode_json(text)
    if payload is None:
        return None

    sender_identity = sender_identity_from_message(message)
    if sender_identity is None:
        LOGGER.warning("Dropping payload without a sender in chat %s", message.chat_id)
        return None

    return InboundEnvelope(
        room_id=room_id_for_chat(message.chat_id),
        sender_identity=sender_identity,
        payload=payload,
    )
