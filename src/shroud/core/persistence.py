"""JSON helpers over the secure store port.

Storage failures are logged and degrade to defaults instead of propagating:
a broken cache must never stop a session from starting.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from shroud.core.ports import SecureStorePort

LOGGER = logging.getLogger(__name__)


def load_json(store: SecureStorePort, key: str, default: Any) -> Any:
    """Load a JSON value, returning ``default`` on a missing or unreadable key."""

    try:
        raw = store.get(key)
    except Exception:
        LOGGER.exception("Failed to read %s from secure store", key)
        return default
    if raw is None:
        return default
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        LOGGER.warning("Discarding unreadable value for %s", key)
        return default


def save_json(store: SecureStorePort, key: str, value: Any) -> bool:
    """Persist a JSON value; returns False (and logs) on failure."""

    try:
        store.set(key, json.dumps(value, sort_keys=True).encode("utf-8"))
    except Exception:
        LOGGER.exception("Failed to write %s to secure store", key)
        return False
    return True


def delete_key(store: SecureStorePort, key: str) -> bool:
    try:
        store.delete(key)
    except Exception:
        LOGGER.exception("Failed to delete %s from secure store", key)
        return False
    return True
