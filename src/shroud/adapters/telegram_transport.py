"""Telegram transport adapter.

Implements the core TransportPort on a Telethon client. A direct room is the
private chat with the peer; payloads travel as compact JSON text messages.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from telethon import errors

from shroud.adapters.telegram_mapper import chat_id_from_room, room_id_for_chat
from shroud.core.errors import TransportError, ValidationError
from shroud.core.handles import USER_ID_PREFIX, USERNAME_PREFIX, identity_for_user, normalize_identity

LOGGER = logging.getLogger(__name__)


def _peer_for_identity(identity: str) -> "str | int":
    identity = normalize_identity(identity)
    if identity.startswith(USERNAME_PREFIX):
        return identity
    return int(identity[len(USER_ID_PREFIX) :])


class TelegramTransport:
    """TransportPort adapter backed by a connected TelegramClient."""

    def __init__(self, client) -> None:
        self._client = client
        self._me: Optional[str] = None

    async def current_identity(self) -> Optional[str]:
        if self._me is not None:
            return self._me
        try:
            me = await self._client.get_me()
        except errors.RPCError as exc:
            raise TransportError(f"Failed to load the current account: {exc}") from exc
        if me is None:
            return None
        self._me = identity_for_user(getattr(me, "username", None), getattr(me, "id", None))
        return self._me

    async def create_direct_room(self, identity: str) -> str:
        try:
            peer = _peer_for_identity(identity)
        except ValidationError as exc:
            raise TransportError(str(exc)) from exc
        try:
            entity: Any = await self._client.get_entity(peer)
        except (errors.RPCError, ValueError) as exc:
            raise TransportError(f"Failed to open a direct chat with {identity}: {exc}") from exc
        room_id = room_id_for_chat(entity.id)
        LOGGER.debug("Direct room for %s is %s", identity, room_id)
        return room_id

    async def send_payload(self, room_id: str, payload: dict[str, Any]) -> None:
        try:
            chat_id = chat_id_from_room(room_id)
        except ValidationError as exc:
            raise TransportError(str(exc)) from exc
        text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        try:
            await self._client.send_message(chat_id, text)
        except (errors.RPCError, ValueError) as exc:
            raise TransportError(f"Failed to send payload to {room_id}: {exc}") from exc
        LOGGER.debug("Sent %s payload to %s", payload.get("type"), room_id)
