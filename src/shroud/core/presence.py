"""Ephemeral read receipts and typing indicators.

Nothing here is persisted. Receipts are capped per room; typing entries are
cleared by a per-(room, handle) inactivity timer and additionally filtered at
read time once they are older than the staleness window.
"""

from __future__ import annotations

import logging
from collections import OrderedDict

from shroud.core.config import PresenceConfig
from shroud.core.models import ReadReceipt, TypingIndicator
from shroud.core.ports import SchedulerPort
from shroud.core.timers import TimerSlot

LOGGER = logging.getLogger(__name__)

TYPING_SUFFIX = "typing…"


class EphemeralPresenceStore:
    """In-memory presence state for one session."""

    def __init__(self, config: PresenceConfig, scheduler: SchedulerPort) -> None:
        self._config = config
        self._scheduler = scheduler
        # room_id -> (message_id, reader_handle) -> receipt, oldest first
        self._receipts: dict[str, OrderedDict[tuple[str, str], ReadReceipt]] = {}
        # room_id -> handle -> indicator
        self._typing: dict[str, dict[str, TypingIndicator]] = {}
        self._typing_timers: dict[tuple[str, str], TimerSlot] = {}

    # -- read receipts -----------------------------------------------------

    def mark_read(self, message_id: str, room_id: str, reader_handle: str) -> ReadReceipt:
        receipt = ReadReceipt(
            message_id=message_id,
            room_id=room_id,
            reader_handle=reader_handle,
            read_at=self._scheduler.now(),
        )
        room = self._receipts.setdefault(room_id, OrderedDict())
        key = (message_id, reader_handle)
        # Replace and move to the newest position so eviction stays oldest-first.
        room.pop(key, None)
        room[key] = receipt
        while len(room) > self._config.receipts_per_room:
            room.popitem(last=False)
        LOGGER.debug("Message %s marked read in room %s", message_id[:8], room_id[:8])
        return receipt

    def get_read_receipts(self, message_id: str, room_id: str) -> list[ReadReceipt]:
        room = self._receipts.get(room_id, {})
        return [receipt for receipt in room.values() if receipt.message_id == message_id]

    def get_read_count(self, message_id: str, room_id: str) -> int:
        return len(self.get_read_receipts(message_id, room_id))

    def is_read_by(self, message_id: str, room_id: str, reader_handle: str) -> bool:
        return (message_id, reader_handle) in self._receipts.get(room_id, {})

    # -- typing ------------------------------------------------------------

    def set_typing(self, room_id: str, handle: str, is_group: bool) -> None:
        self._typing.setdefault(room_id, {})[handle] = TypingIndicator(
            room_id=room_id,
            handle=handle,
            started_at=self._scheduler.now(),
        )
        key = (room_id, handle)
        slot = self._typing_timers.get(key)
        if slot is None:
            slot = TimerSlot(self._scheduler, "typing")
            self._typing_timers[key] = slot
        slot.arm(
            self._config.typing_inactivity_seconds,
            lambda: self.stop_typing(room_id, handle, is_group),
        )
        LOGGER.debug(
            "Typing started in room %s by %s",
            room_id[:8],
            handle if is_group else "[anonymous]",
        )

    def stop_typing(self, room_id: str, handle: str, is_group: bool) -> None:
        room = self._typing.get(room_id)
        if room is not None:
            room.pop(handle, None)
            if not room:
                self._typing.pop(room_id, None)
        slot = self._typing_timers.pop((room_id, handle), None)
        if slot is not None:
            slot.cancel()
        LOGGER.debug(
            "Typing stopped in room %s by %s",
            room_id[:8],
            handle if is_group else "[anonymous]",
        )

    def get_typing_users(self, room_id: str) -> list[TypingIndicator]:
        now = self._scheduler.now()
        return [
            indicator
            for indicator in self._typing.get(room_id, {}).values()
            if now - indicator.started_at < self._config.typing_stale_seconds
        ]

    def get_typing_text(self, room_id: str, is_group: bool, exclude_handle: "str | None" = None) -> str:
        """Format the typing line shown under a conversation.

        1:1 conversations never reveal who is typing.
        """

        handles = [
            indicator.handle
            for indicator in self.get_typing_users(room_id)
            if indicator.handle != exclude_handle
        ]
        if not handles:
            return ""
        if not is_group:
            return TYPING_SUFFIX
        if len(handles) == 1:
            return f"{handles[0]} is {TYPING_SUFFIX}"
        if len(handles) == 2:
            return f"{handles[0]} and {handles[1]} are {TYPING_SUFFIX}"
        return f"{handles[0]} and {len(handles) - 1} others are {TYPING_SUFFIX}"

    # -- teardown ----------------------------------------------------------

    def clear_room(self, room_id: str) -> None:
        self._receipts.pop(room_id, None)
        self._typing.pop(room_id, None)
        for key in [key for key in self._typing_timers if key[0] == room_id]:
            self._typing_timers.pop(key).cancel()
        LOGGER.info("Cleared ephemeral data for room %s", room_id[:8])

    def clear_all(self) -> None:
        self._receipts.clear()
        self._typing.clear()
        for slot in self._typing_timers.values():
            slot.cancel()
        self._typing_timers.clear()
        LOGGER.info("Cleared all ephemeral presence data")

    def active_timer_count(self) -> int:
        return sum(1 for slot in self._typing_timers.values() if slot.active)

    def stats(self) -> dict[str, int]:
        return {
            "rooms": len(self._receipts),
            "receipts": sum(len(room) for room in self._receipts.values()),
            "typing_users": sum(len(room) for room in self._typing.values()),
        }
