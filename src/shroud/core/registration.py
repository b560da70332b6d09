"""User registration and handle allocation (core domain).

Handles are drawn at random and reserved before registration; registering
commits handle and label together in a single registry assignment.
"""

from __future__ import annotations

import logging
import random
import re
import time
from typing import Callable, Optional

from shroud.core.config import HandleConfig, RegistrationConfig
from shroud.core.errors import ConflictError, ExhaustedError, NotFoundError, ValidationError
from shroud.core.handles import normalize_identity, require_handle
from shroud.core.models import RegisteredUser
from shroud.core.persistence import load_json, save_json
from shroud.core.ports import SecureStorePort

LOGGER = logging.getLogger(__name__)

REGISTRY_KEY = "registry.users"
DISPLAY_SEPARATOR = " • "

_LABEL_RE = re.compile(r"^[A-Za-z0-9_]+$")


class UserRegistry:
    """Handle/label registry persisted in the secure store."""

    def __init__(
        self,
        store: SecureStorePort,
        handle_config: HandleConfig,
        config: RegistrationConfig,
        *,
        rng: Optional[random.Random] = None,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._handles = handle_config
        self._config = config
        self._rng = rng or random.Random()
        self._wall_clock = wall_clock
        self._users: dict[str, RegisteredUser] = {}
        self._allocated: set[str] = set()

    def load(self) -> int:
        raw = load_json(self._store, REGISTRY_KEY, {})
        users: dict[str, RegisteredUser] = {}
        if isinstance(raw, dict):
            for handle, data in raw.items():
                try:
                    users[handle] = RegisteredUser.from_dict(data)
                except (KeyError, TypeError, ValueError):
                    LOGGER.warning("Skipping unreadable registry entry for handle %s", handle)
        self._users = users
        LOGGER.info("Loaded %s registered users", len(users))
        return len(users)

    def _save(self) -> None:
        save_json(self._store, REGISTRY_KEY, {handle: user.to_dict() for handle, user in self._users.items()})

    # -- allocation --------------------------------------------------------

    def generate_available_handle(self) -> str:
        """Draw a random unclaimed handle and reserve it for registration."""

        for _ in range(self._config.max_attempts):
            number = self._rng.randint(self._handles.first, self._handles.last)
            handle = str(number).zfill(self._handles.digits)
            if handle not in self._users and handle not in self._allocated:
                self._allocated.add(handle)
                return handle
        raise ExhaustedError(f"no free handle found after {self._config.max_attempts} attempts")

    def release_handle(self, handle: str) -> None:
        self._allocated.discard(handle)

    # -- registration ------------------------------------------------------

    def validate_label(self, label: str) -> str:
        label = label.strip() if isinstance(label, str) else ""
        if not self._config.label_min <= len(label) <= self._config.label_max:
            raise ValidationError(
                f"label must be between {self._config.label_min} and {self._config.label_max} characters"
            )
        if not _LABEL_RE.match(label):
            raise ValidationError("label can only contain letters, numbers, and underscores")
        return label

    def register_user(self, handle: str, label: str, identity: Optional[str] = None) -> RegisteredUser:
        """Register a pre-allocated handle with a unique label."""

        require_handle(handle, self._handles)
        if handle in self._users:
            raise ConflictError(f"handle {handle} is already registered")
        if handle not in self._allocated:
            raise ValidationError(f"handle {handle} was not allocated")

        label = self.validate_label(label).lower()
        if any(user.label.lower() == label for user in self._users.values()):
            raise ConflictError(f"label {label!r} is already taken")
        if identity is not None:
            identity = normalize_identity(identity)

        user = RegisteredUser(
            handle=handle,
            label=label,
            registered_at=self._wall_clock(),
            is_online=True,
            identity=identity,
        )
        # Single assignment: handle and label become visible together.
        self._users[handle] = user
        self._allocated.discard(handle)
        self._save()
        LOGGER.info("User registered: %s%s%s", handle, DISPLAY_SEPARATOR, label)
        return user

    # -- lookups -----------------------------------------------------------

    def get_user(self, handle: str) -> Optional[RegisteredUser]:
        return self._users.get(handle)

    def users(self) -> list[RegisteredUser]:
        return list(self._users.values())

    def identity_for(self, handle: str) -> str:
        user = self._users.get(handle)
        if user is None or user.identity is None:
            raise NotFoundError(f"no registered identity for handle {handle}")
        return user.identity

    def display_name_for(self, handle: str) -> str:
        user = self._users.get(handle)
        if user is None:
            return handle
        return f"{handle}{DISPLAY_SEPARATOR}{user.label}"

    def set_online(self, handle: str, is_online: bool) -> None:
        user = self._users.get(handle)
        if user is None or user.is_online == is_online:
            return
        self._users[handle] = RegisteredUser(
            handle=user.handle,
            label=user.label,
            registered_at=user.registered_at,
            is_online=is_online,
            identity=user.identity,
        )
        self._save()

    def is_online(self, handle: str) -> bool:
        user = self._users.get(handle)
        return bool(user and user.is_online)
