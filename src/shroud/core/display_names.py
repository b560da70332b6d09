"""Free-text display names: the user's own name and one per contact handle.

Both live in the secure store. A handle without a stored name falls back to a
stock name picked from the handle, so the same contact always reads the same.
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from shroud.core.errors import ValidationError
from shroud.core.persistence import delete_key, load_json, save_json
from shroud.core.ports import SecureStorePort

LOGGER = logging.getLogger(__name__)

DISPLAY_NAMES_KEY = "display_names.contacts"
USER_DISPLAY_NAME_KEY = "display_names.user"

MAX_DISPLAY_NAME = 20

STOCK_NAMES = (
    "Echo", "Nimbus", "Zephyr", "Orion", "Drift", "Vanta", "Quartz", "Falcon",
    "Nova", "Bolt", "Cipher", "Ghost", "Raven", "Storm", "Void", "Shade",
    "Spark", "Flux", "Prism", "Nexus", "Pulse", "Vapor", "Matrix", "Quantum",
)


def _clean(name: object) -> str:
    if not isinstance(name, str):
        raise ValidationError("display name must be a string")
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("display name cannot be empty")
    if len(cleaned) > MAX_DISPLAY_NAME:
        raise ValidationError(f"display name must be {MAX_DISPLAY_NAME} characters or less")
    return cleaned


class DisplayNameBook:
    def __init__(self, store: SecureStorePort, *, rng: Optional[random.Random] = None) -> None:
        self._store = store
        self._rng = rng or random.Random()
        self._names: dict[str, str] = {}
        self._user_name = ""

    def load(self) -> int:
        """Load stored names; a first run gets a stock name for the user."""

        raw = load_json(self._store, DISPLAY_NAMES_KEY, {})
        names: dict[str, str] = {}
        if isinstance(raw, dict):
            for handle, name in raw.items():
                if isinstance(name, str) and name:
                    names[handle] = name
                else:
                    LOGGER.warning("Skipping unreadable display name for handle %s", handle)
        self._names = names

        stored = load_json(self._store, USER_DISPLAY_NAME_KEY, None)
        if isinstance(stored, str) and stored:
            self._user_name = stored
        else:
            self.set_user_display_name(self._rng.choice(STOCK_NAMES))
        return len(names)

    # -- own name ----------------------------------------------------------

    def set_user_display_name(self, name: str) -> str:
        cleaned = _clean(name)
        self._user_name = cleaned
        save_json(self._store, USER_DISPLAY_NAME_KEY, cleaned)
        LOGGER.info("Updated user display name")
        return cleaned

    def get_user_display_name(self) -> str:
        return self._user_name

    # -- contacts ----------------------------------------------------------

    def set_display_name(self, handle: str, name: str) -> str:
        cleaned = _clean(name)
        self._names[handle] = cleaned
        save_json(self._store, DISPLAY_NAMES_KEY, self._names)
        LOGGER.info("Set display name for handle %s", handle)
        return cleaned

    def get_display_name(self, handle: str) -> Optional[str]:
        return self._names.get(handle)

    def display_name_or_fallback(self, handle: str) -> str:
        name = self._names.get(handle)
        if name:
            return name
        index = int(handle) if handle.isascii() and handle.isdigit() else sum(map(ord, handle))
        return STOCK_NAMES[index % len(STOCK_NAMES)]

    def remove_display_name(self, handle: str) -> bool:
        if self._names.pop(handle, None) is None:
            return False
        save_json(self._store, DISPLAY_NAMES_KEY, self._names)
        LOGGER.info("Removed display name for handle %s", handle)
        return True

    def display_names(self) -> dict[str, str]:
        return dict(self._names)

    def clear(self) -> None:
        self._names = {}
        delete_key(self._store, DISPLAY_NAMES_KEY)
