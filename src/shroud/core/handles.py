"""Helpers for validating handles, identities and room ids.

Handles are fixed-width numeric PINs. Identities follow the Telegram peer key
convention used across the app: ``@username`` or ``user_id:<id>``.
"""

from __future__ import annotations

import re
from typing import Iterator

from shroud.core.config import HandleConfig
from shroud.core.errors import ValidationError

USERNAME_PREFIX = "@"
USER_ID_PREFIX = "user_id:"

_USERNAME_RE = re.compile(r"^[a-z][a-z0-9_]{3,31}$")
_DIGITS_RE = re.compile(r"[0-9]+")


def is_valid_handle(value: object, config: HandleConfig) -> bool:
    """Return True when value is a PIN of the configured width."""

    if not isinstance(value, str) or len(value) != config.digits or not _DIGITS_RE.fullmatch(value):
        return False
    return config.first <= int(value) <= config.last


def require_handle(value: object, config: HandleConfig) -> str:
    if not is_valid_handle(value, config):
        raise ValidationError(f"handle must be a {config.digits}-digit PIN: {value!r}")
    return value  # type: ignore[return-value]


def iter_handles(config: HandleConfig) -> Iterator[str]:
    """Yield every handle in the space, lowest first."""

    for number in range(config.first, config.last + 1):
        yield str(number).zfill(config.digits)


def normalize_identity(value: object) -> str:
    """Normalize an identity or raise ValidationError.

    Usernames are lower-cased; numeric ids are canonicalized (no leading zeros).
    """

    if not isinstance(value, str):
        raise ValidationError(f"identity must be a string: {value!r}")
    raw = value.strip()

    if raw.startswith(USERNAME_PREFIX):
        username = raw[1:].lower()
        if not _USERNAME_RE.match(username):
            raise ValidationError(f"invalid username identity: {value!r}")
        return f"{USERNAME_PREFIX}{username}"

    if raw.startswith(USER_ID_PREFIX):
        number = raw[len(USER_ID_PREFIX) :]
        if not _DIGITS_RE.fullmatch(number) or int(number) <= 0:
            raise ValidationError(f"invalid user_id identity: {value!r}")
        return f"{USER_ID_PREFIX}{int(number)}"

    raise ValidationError(f"identity must start with @ or user_id: {value!r}")


def identity_for_user(username: "str | None", user_id: "int | None") -> str:
    """Build the identity for a transport user, preferring the public username.

    A username the identity rules reject falls back to the numeric id.
    """

    if isinstance(username, str) and _USERNAME_RE.match(username.lower()):
        return f"{USERNAME_PREFIX}{username.lower()}"
    if user_id is None:
        raise ValidationError("user has neither username nor id")
    return f"{USER_ID_PREFIX}{user_id}"
