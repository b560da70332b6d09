"""Handle ↔ identity resolution (core domain).

The map is a local cache persisted in the secure store and merged with a
best-effort remote directory. Local entries always win: a refresh only fills
handles that have no mapping yet, and a malformed directory document is
rejected as a whole.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Optional

from shroud.core.config import DirectoryConfig, HandleConfig
from shroud.core.errors import ConflictError, ExhaustedError, NotFoundError, ValidationError
from shroud.core.handles import is_valid_handle, iter_handles, normalize_identity, require_handle
from shroud.core.models import IdentityMapping, Origin
from shroud.core.persistence import load_json, save_json
from shroud.core.ports import DirectoryPort, SchedulerPort, SecureStorePort
from shroud.core.timers import TimerSlot

LOGGER = logging.getLogger(__name__)

MAPPINGS_KEY = "identity_map.mappings"
LAST_REFRESH_KEY = "identity_map.last_refresh"


class RefreshOutcome(str, Enum):
    APPLIED = "applied"
    THROTTLED = "throttled"
    REJECTED = "rejected"
    FAILED = "failed"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"


class IdentityMap:
    """Local handle cache with throttled remote merge."""

    def __init__(
        self,
        store: SecureStorePort,
        handle_config: HandleConfig,
        directory_config: DirectoryConfig,
        directory: Optional[DirectoryPort] = None,
        scheduler: Optional[SchedulerPort] = None,
        *,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._handles = handle_config
        self._directory_config = directory_config
        self._directory = directory
        self._wall_clock = wall_clock
        self._mappings: dict[str, IdentityMapping] = {}
        self._refresh_slot = TimerSlot(scheduler, "directory refresh") if scheduler else None
        self._refresh_task: Optional[asyncio.Task] = None

    # -- persistence -------------------------------------------------------

    def load(self) -> int:
        """Load cached mappings; unreadable entries are skipped."""

        raw = load_json(self._store, MAPPINGS_KEY, {})
        mappings: dict[str, IdentityMapping] = {}
        if isinstance(raw, dict):
            for handle, data in raw.items():
                try:
                    mapping = IdentityMapping.from_dict(handle, data)
                    require_handle(handle, self._handles)
                    normalize_identity(mapping.identity)
                except (KeyError, TypeError, ValueError, ValidationError):
                    LOGGER.warning("Skipping unreadable cached mapping for handle %s", handle)
                    continue
                mappings[handle] = mapping
        self._mappings = mappings
        LOGGER.info("Loaded %s handle mappings", len(mappings))
        return len(mappings)

    def _save(self) -> None:
        save_json(
            self._store,
            MAPPINGS_KEY,
            {handle: mapping.to_dict() for handle, mapping in self._mappings.items()},
        )

    # -- lookups -----------------------------------------------------------

    def lookup(self, handle: str) -> Optional[str]:
        mapping = self._mappings.get(handle)
        return mapping.identity if mapping else None

    def resolve(self, handle: str) -> str:
        """Return the identity for a handle or raise NotFoundError."""

        identity = self.lookup(handle)
        if identity is None:
            raise NotFoundError(f"no identity mapped for handle {handle}")
        return identity

    def has_mapping(self, handle: str) -> bool:
        return handle in self._mappings

    def get_handle_for(self, identity: str) -> str:
        """Reverse lookup; the map is small so a scan is fine."""

        try:
            identity = normalize_identity(identity)
        except ValidationError:
            raise NotFoundError(f"no handle mapped for identity {identity}") from None
        for handle, mapping in self._mappings.items():
            if mapping.identity == identity:
                return handle
        raise NotFoundError(f"no handle mapped for identity {identity}")

    def mappings(self) -> dict[str, IdentityMapping]:
        return dict(self._mappings)

    # -- mutations ---------------------------------------------------------

    def add_mapping(self, handle: str, identity: str) -> bool:
        """Bind handle to identity locally.

        Returns True when a new mapping was written, False when the exact pair
        already existed. Raises ConflictError when either side is claimed by a
        different counterpart.
        """

        require_handle(handle, self._handles)
        identity = normalize_identity(identity)

        existing = self._mappings.get(handle)
        if existing is not None:
            if existing.identity == identity:
                return False
            raise ConflictError(f"handle {handle} is already mapped to a different identity")

        for other_handle, mapping in self._mappings.items():
            if mapping.identity == identity:
                raise ConflictError(f"identity is already mapped to handle {other_handle}")

        self._mappings[handle] = IdentityMapping(
            handle=handle,
            identity=identity,
            origin=Origin.LOCAL,
            observed_at=self._wall_clock(),
        )
        self._save()
        LOGGER.info("Mapped handle %s", handle)
        return True

    def remove_mapping(self, handle: str) -> bool:
        if self._mappings.pop(handle, None) is None:
            return False
        self._save()
        LOGGER.info("Removed mapping for handle %s", handle)
        return True

    def clear(self) -> None:
        self._mappings = {}
        self._save()

    def generate_available_handle(self) -> str:
        """Return the lowest handle with no mapping."""

        for handle in iter_handles(self._handles):
            if handle not in self._mappings:
                return handle
        raise ExhaustedError("every handle in the space is mapped")

    # -- remote directory --------------------------------------------------

    def _refresh_due(self) -> bool:
        last = load_json(self._store, LAST_REFRESH_KEY, None)
        if not isinstance(last, (int, float)):
            return True
        return self._wall_clock() - last >= self._directory_config.refresh_interval_seconds

    def _validate_snapshot(self, snapshot: Any) -> dict[str, str]:
        """Validate the whole document; any bad pair rejects all of it."""

        if not isinstance(snapshot, dict):
            raise ValidationError("directory snapshot must be a JSON object")
        validated: dict[str, str] = {}
        for handle, identity in snapshot.items():
            if not is_valid_handle(handle, self._handles):
                raise ValidationError(f"directory contains invalid handle {handle!r}")
            validated[handle] = normalize_identity(identity)
        return validated

    def _merge(self, remote: dict[str, str]) -> int:
        claimed = {mapping.identity for mapping in self._mappings.values()}
        adopted = 0
        now = self._wall_clock()
        for handle, identity in remote.items():
            # Existing mappings (local or previously adopted) are authoritative.
            if handle in self._mappings or identity in claimed:
                continue
            self._mappings[handle] = IdentityMapping(
                handle=handle,
                identity=identity,
                origin=Origin.REMOTE,
                observed_at=now,
            )
            claimed.add(identity)
            adopted += 1
        if adopted:
            self._save()
        return adopted

    async def refresh_from_remote(self, force: bool = False) -> RefreshOutcome:
        """Fetch and merge the remote directory. Never raises."""

        if self._directory is None:
            return RefreshOutcome.UNAVAILABLE
        if not force and not self._refresh_due():
            return RefreshOutcome.THROTTLED

        try:
            snapshot = await asyncio.wait_for(
                self._directory.fetch(),
                timeout=self._directory_config.timeout_seconds,
            )
        except (asyncio.TimeoutError, TimeoutError):
            LOGGER.warning(
                "Directory refresh timed out after %ss, using cached mappings",
                self._directory_config.timeout_seconds,
            )
            return RefreshOutcome.TIMEOUT
        except Exception:
            LOGGER.exception("Directory refresh failed, using cached mappings")
            return RefreshOutcome.FAILED

        try:
            remote = self._validate_snapshot(snapshot)
        except ValidationError as exc:
            LOGGER.error("Directory snapshot rejected: %s", exc)
            return RefreshOutcome.REJECTED

        adopted = self._merge(remote)
        save_json(self._store, LAST_REFRESH_KEY, self._wall_clock())
        LOGGER.info("Directory refresh merged %s of %s remote mappings", adopted, len(remote))
        return RefreshOutcome.APPLIED

    def start_refresh(self, force: bool = False) -> Optional[asyncio.Task]:
        """Run a refresh in the background; resolution keeps using the cache."""

        if self._directory is None:
            return None
        if self._refresh_task is not None and not self._refresh_task.done():
            return self._refresh_task
        self._refresh_task = asyncio.get_running_loop().create_task(self.refresh_from_remote(force))
        return self._refresh_task

    def schedule_refresh(self) -> None:
        """Start a background refresh now and re-arm the throttle timer."""

        if self._directory is None or self._refresh_slot is None:
            return
        self.start_refresh()
        self._refresh_slot.arm(self._directory_config.refresh_interval_seconds, self.schedule_refresh)

    def active_timer_count(self) -> int:
        return int(self._refresh_slot is not None and self._refresh_slot.active)

    def cancel_timers(self) -> None:
        if self._refresh_slot is not None:
            self._refresh_slot.cancel()
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None
