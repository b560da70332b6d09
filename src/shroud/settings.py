"""Static configuration for shroud.

All user-editable settings (handle scheme, timers, directory, logging) live in a
single JSON file for quick edits without touching Python. Secrets stay in the
environment (see ``.env``).
"""

import json
import os

from shroud.core.config import (
    CoreConfig,
    DirectoryConfig,
    DisclosureConfig,
    HandleConfig,
    PresenceConfig,
    RegistrationConfig,
)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

# SHROUD_CONFIG lets several local accounts share one checkout.
CONFIG_PATH = os.getenv("SHROUD_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Encrypted store location; the key itself comes from STORE_KEY.
_storage = _CONFIG.get("storage", {})
DB_PATH = _resolve_path(_storage.get("path", "data/shroud.db"))

# Handle scheme: fixed-width numeric PINs, e.g. digits=2 -> "10".."99".
_handles = _CONFIG.get("handles", {})
HANDLE_DIGITS = int(_handles.get("digits", 2))

# Presence timers and receipt cap.
_presence = _CONFIG.get("presence", {})
RECEIPTS_PER_ROOM = int(_presence.get("receipts_per_room", 100))
TYPING_INACTIVITY_SECONDS = float(_presence.get("typing_inactivity_seconds", 3.0))
TYPING_STALE_SECONDS = float(_presence.get("typing_stale_seconds", 5.0))

# Hold-to-reveal timings.
_disclosure = _CONFIG.get("disclosure", {})
RAMP_SECONDS = float(_disclosure.get("ramp_seconds", 0.4))
COUNTDOWN_SECONDS = float(_disclosure.get("countdown_seconds", 7.0))
BLUR_OUT_SECONDS = float(_disclosure.get("blur_out_seconds", 0.2))

# Remote directory; a missing url keeps resolution local-only.
_directory = _CONFIG.get("directory", {})
DIRECTORY_URL = _directory.get("url") or None
DIRECTORY_TIMEOUT_SECONDS = float(_directory.get("timeout_seconds", 10.0))
DIRECTORY_REFRESH_INTERVAL_SECONDS = float(_directory.get("refresh_interval_seconds", 24 * 60 * 60))

# Label rules for registration.
_registration = _CONFIG.get("registration", {})
LABEL_MIN = int(_registration.get("label_min", 3))
LABEL_MAX = int(_registration.get("label_max", 20))
MAX_HANDLE_ATTEMPTS = int(_registration.get("max_attempts", 100))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})


def build_core_config() -> CoreConfig:
    """Build the frozen core config from the loaded settings."""

    return CoreConfig(
        handles=HandleConfig(digits=HANDLE_DIGITS),
        presence=PresenceConfig(
            receipts_per_room=RECEIPTS_PER_ROOM,
            typing_inactivity_seconds=TYPING_INACTIVITY_SECONDS,
            typing_stale_seconds=TYPING_STALE_SECONDS,
        ),
        disclosure=DisclosureConfig(
            ramp_seconds=RAMP_SECONDS,
            countdown_seconds=COUNTDOWN_SECONDS,
            blur_out_seconds=BLUR_OUT_SECONDS,
        ),
        directory=DirectoryConfig(
            url=DIRECTORY_URL,
            timeout_seconds=DIRECTORY_TIMEOUT_SECONDS,
            refresh_interval_seconds=DIRECTORY_REFRESH_INTERVAL_SECONDS,
        ),
        registration=RegistrationConfig(
            label_min=LABEL_MIN,
            label_max=LABEL_MAX,
            max_attempts=MAX_HANDLE_ATTEMPTS,
        ),
    )
