"""Core configuration dataclasses.

We keep config parsing outside the core (see ``shroud.settings``), but these
dataclasses define the shape the core expects so adapters and the app layer can
build sessions safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class HandleConfig:
    """Fixed-width numeric PIN scheme, chosen once per deployment."""

    digits: int = 2

    @property
    def first(self) -> int:
        return 10 ** (self.digits - 1) if self.digits > 1 else 0

    @property
    def last(self) -> int:
        return 10**self.digits - 1


@dataclass(frozen=True)
class PresenceConfig:
    """Read receipt cap and typing timers (seconds)."""

    receipts_per_room: int = 100
    typing_inactivity_seconds: float = 3.0
    typing_stale_seconds: float = 5.0


@dataclass(frozen=True)
class DisclosureConfig:
    """Hold ramp, reveal countdown and blur-out durations (seconds)."""

    ramp_seconds: float = 0.4
    countdown_seconds: float = 7.0
    blur_out_seconds: float = 0.2


@dataclass(frozen=True)
class DirectoryConfig:
    """Remote handle directory settings; ``url=None`` disables remote refresh."""

    url: Optional[str] = None
    timeout_seconds: float = 10.0
    refresh_interval_seconds: float = 24 * 60 * 60


@dataclass(frozen=True)
class RegistrationConfig:
    """Label rules and handle draw retries for registration."""

    label_min: int = 3
    label_max: int = 20
    max_attempts: int = 100


@dataclass(frozen=True)
class CoreConfig:
    """Aggregate config handed to a Session."""

    handles: HandleConfig = field(default_factory=HandleConfig)
    presence: PresenceConfig = field(default_factory=PresenceConfig)
    disclosure: DisclosureConfig = field(default_factory=DisclosureConfig)
    directory: DirectoryConfig = field(default_factory=DirectoryConfig)
    registration: RegistrationConfig = field(default_factory=RegistrationConfig)
