"""Session context object.

One Session is built per logged-in user and passed explicitly to whatever needs
it. ``logout()`` cancels every timer and background task the session owns and
clears all ephemeral state before the object is discarded.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from shroud.core.config import CoreConfig
from shroud.core.disclosure import DisclosureController
from shroud.core.display_names import DisplayNameBook
from shroud.core.handles import require_handle
from shroud.core.handshake import ContactHandshake
from shroud.core.identity_map import IdentityMap
from shroud.core.models import ContactRequest, InboundEnvelope
from shroud.core.nicknames import NicknameBook
from shroud.core.persistence import load_json, save_json
from shroud.core.ports import DirectoryPort, SchedulerPort, SecureStorePort, TransportPort
from shroud.core.presence import EphemeralPresenceStore
from shroud.core.registration import UserRegistry

LOGGER = logging.getLogger(__name__)

OWN_HANDLE_KEY = "session.own_handle"


class Session:
    """Wires the core components for one user session."""

    def __init__(
        self,
        config: CoreConfig,
        transport: TransportPort,
        store: SecureStorePort,
        scheduler: SchedulerPort,
        directory: Optional[DirectoryPort] = None,
        *,
        own_handle: Optional[str] = None,
        wall_clock: Callable[[], float] = time.time,
        registry: Optional[UserRegistry] = None,
        request_ids: Optional[Callable[[], str]] = None,
    ) -> None:
        self.config = config
        self._store = store
        self._transport = transport
        self._own_handle = own_handle
        self.identity_map = IdentityMap(
            store,
            config.handles,
            config.directory,
            directory,
            scheduler,
            wall_clock=wall_clock,
        )
        self.registry = registry or UserRegistry(store, config.handles, config.registration, wall_clock=wall_clock)
        self.nicknames = NicknameBook(store, wall_clock=wall_clock)
        self.display_names = DisplayNameBook(store)
        self.presence = EphemeralPresenceStore(config.presence, scheduler)
        self.disclosure = DisclosureController(config.disclosure, scheduler)
        handshake_options = {"id_factory": request_ids} if request_ids else {}
        self.handshake = ContactHandshake(
            lambda: self._own_handle,
            config.handles,
            self.identity_map,
            self.registry,
            transport,
            store,
            wall_clock=wall_clock,
            **handshake_options,
        )
        self._closed = False

    @property
    def own_handle(self) -> Optional[str]:
        return self._own_handle

    def start(self, *, refresh_directory: bool = True) -> None:
        """Load persisted caches and kick off the background directory refresh.

        Directory refresh needs a running event loop; callers without one can
        pass ``refresh_directory=False``.
        """

        if self._own_handle is None:
            stored = load_json(self._store, OWN_HANDLE_KEY, None)
            if isinstance(stored, str):
                self._own_handle = stored
        self.identity_map.load()
        self.registry.load()
        self.nicknames.load()
        self.display_names.load()
        self.handshake.load()
        if refresh_directory:
            self.identity_map.schedule_refresh()
        LOGGER.info("Session started for handle %s", self._own_handle or "[unregistered]")

    async def current_identity(self) -> Optional[str]:
        """Transport identity of the logged-in account."""

        return await self._transport.current_identity()

    def claim_handle(self, handle: str) -> None:
        """Persist the handle this session acts as."""

        self._own_handle = require_handle(handle, self.config.handles)
        save_json(self._store, OWN_HANDLE_KEY, handle)

    def handle_inbound(self, envelope: InboundEnvelope) -> Optional[ContactRequest]:
        return self.handshake.handle_inbound(envelope)

    def display_name_for(self, handle: str) -> str:
        return self.registry.display_name_for(handle)

    def active_timer_count(self) -> int:
        return (
            self.identity_map.active_timer_count()
            + self.presence.active_timer_count()
            + self.disclosure.active_timer_count()
        )

    def logout(self) -> None:
        """Cancel all timers and tasks and clear ephemeral state."""

        if self._closed:
            return
        self.identity_map.cancel_timers()
        self.presence.clear_all()
        self.disclosure.clear_all()
        self.handshake.clear()
        self._closed = True
        LOGGER.info("Session closed for handle %s", self._own_handle or "[unregistered]")
