"""Local contact nicknames: two-letter initials shown next to a handle."""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, Optional

from shroud.core.errors import ConflictError, ValidationError
from shroud.core.models import ContactNickname
from shroud.core.persistence import delete_key, load_json, save_json
from shroud.core.ports import SecureStorePort

LOGGER = logging.getLogger(__name__)

NICKNAMES_KEY = "nicknames"

_NICKNAME_RE = re.compile(r"^[A-Za-z]{2}$")


class NicknameBook:
    def __init__(self, store: SecureStorePort, *, wall_clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._wall_clock = wall_clock
        self._nicknames: dict[str, ContactNickname] = {}

    def load(self) -> int:
        raw = load_json(self._store, NICKNAMES_KEY, {})
        nicknames: dict[str, ContactNickname] = {}
        if isinstance(raw, dict):
            for handle, data in raw.items():
                try:
                    nicknames[handle] = ContactNickname.from_dict(data)
                except (KeyError, TypeError, ValueError):
                    LOGGER.warning("Skipping unreadable nickname for handle %s", handle)
        self._nicknames = nicknames
        return len(nicknames)

    def _save(self) -> None:
        save_json(self._store, NICKNAMES_KEY, {handle: item.to_dict() for handle, item in self._nicknames.items()})

    def set_nickname(self, handle: str, nickname: str) -> ContactNickname:
        if not isinstance(nickname, str) or not _NICKNAME_RE.match(nickname):
            raise ValidationError("nickname must be exactly 2 letters (e.g. JD, AB)")
        nickname = nickname.upper()

        for other_handle, item in self._nicknames.items():
            if other_handle != handle and item.nickname == nickname:
                raise ConflictError(f"nickname {nickname} is already used for handle {other_handle}")

        now = self._wall_clock()
        previous = self._nicknames.get(handle)
        entry = ContactNickname(
            handle=handle,
            nickname=nickname,
            created_at=previous.created_at if previous else now,
            updated_at=now,
        )
        self._nicknames[handle] = entry
        self._save()
        LOGGER.info("%s nickname for handle %s", "Updated" if previous else "Set", handle)
        return entry

    def get_nickname(self, handle: str) -> Optional[str]:
        entry = self._nicknames.get(handle)
        return entry.nickname if entry else None

    def remove_nickname(self, handle: str) -> bool:
        if self._nicknames.pop(handle, None) is None:
            return False
        self._save()
        return True

    def nicknames(self) -> list[ContactNickname]:
        return list(self._nicknames.values())

    def display_name(self, handle: str) -> str:
        nickname = self.get_nickname(handle)
        return f"{handle} ({nickname})" if nickname else handle

    def short_display_name(self, handle: str) -> str:
        return self.get_nickname(handle) or handle

    def clear(self) -> None:
        self._nicknames = {}
        delete_key(self._store, NICKNAMES_KEY)
