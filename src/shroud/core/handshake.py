"""Contact handshake protocol (core domain).

Two payloads travel over a direct room:

1) ``contact_request`` from the requester, stored by both sides keyed by id
2) ``contact_accepted`` from the recipient once the request is accepted

Accepting writes the requester's mapping on the recipient side; receiving the
acceptance writes the recipient's mapping on the requester side. Every mutation
is idempotent by request id, and resolved requests are immutable.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from shroud.core.config import HandleConfig
from shroud.core.errors import ConflictError, NotFoundError, TransportError, ValidationError
from shroud.core.handles import is_valid_handle, normalize_identity
from shroud.core.identity_map import IdentityMap
from shroud.core.models import ContactRequest, Direction, InboundEnvelope, RequestStatus
from shroud.core.observers import Observers, Subscription
from shroud.core.payloads import (
    ContactAcceptedPayload,
    ContactRequestPayload,
    parse_payload,
)
from shroud.core.persistence import load_json, save_json
from shroud.core.ports import SecureStorePort, TransportPort
from shroud.core.registration import UserRegistry

LOGGER = logging.getLogger(__name__)

REQUESTS_KEY = "handshake.requests"


class SendStatus(str, Enum):
    SENT = "sent"
    ALREADY_CONNECTED = "already_connected"


@dataclass(frozen=True)
class SendResult:
    status: SendStatus
    request: Optional[ContactRequest] = None


@dataclass(frozen=True)
class AcceptResult:
    """Outcome of accept(); a mapping conflict does not fail the accept."""

    request: ContactRequest
    mapping_written: bool
    mapping_conflict: Optional[ConflictError] = None
    already_accepted: bool = False


@dataclass(frozen=True)
class HandshakeEvent:
    kind: str
    request: ContactRequest


class ContactHandshake:
    def __init__(
        self,
        own_handle: Callable[[], Optional[str]],
        handle_config: HandleConfig,
        identity_map: IdentityMap,
        registry: UserRegistry,
        transport: TransportPort,
        store: SecureStorePort,
        *,
        wall_clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = lambda: f"req_{uuid.uuid4().hex}",
    ) -> None:
        self._own_handle = own_handle
        self._handles = handle_config
        self._identity_map = identity_map
        self._registry = registry
        self._transport = transport
        self._store = store
        self._wall_clock = wall_clock
        self._id_factory = id_factory
        self._requests: dict[str, ContactRequest] = {}
        self._observers: Observers[HandshakeEvent] = Observers("handshake")

    def subscribe(self, callback: Callable[[HandshakeEvent], None]) -> Subscription:
        return self._observers.subscribe(callback)

    # -- persistence -------------------------------------------------------

    def load(self) -> int:
        raw = load_json(self._store, REQUESTS_KEY, {})
        requests: dict[str, ContactRequest] = {}
        if isinstance(raw, dict):
            for request_id, data in raw.items():
                try:
                    requests[request_id] = ContactRequest.from_dict(data)
                except (KeyError, TypeError, ValueError):
                    LOGGER.warning("Skipping unreadable contact request %s", request_id)
        self._requests = requests
        return len(requests)

    def _store_request(self, request: ContactRequest) -> None:
        self._requests[request.id] = request
        save_json(self._store, REQUESTS_KEY, {rid: item.to_dict() for rid, item in self._requests.items()})

    def _require_own_handle(self) -> str:
        handle = self._own_handle()
        if not handle:
            raise ValidationError("this session has no handle yet; register first")
        return handle

    # -- reads -------------------------------------------------------------

    def get_request(self, request_id: str) -> ContactRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise NotFoundError(f"contact request {request_id} not found")
        return request

    def pending_requests(self) -> list[ContactRequest]:
        """Incoming requests addressed to us that still await a decision."""

        own = self._own_handle()
        if not own:
            return []
        pending = [
            request
            for request in self._requests.values()
            if request.direction is Direction.INCOMING
            and request.status is RequestStatus.PENDING
            and request.to_handle == own
        ]
        return sorted(pending, key=lambda request: request.created_at)

    def pending_count(self) -> int:
        return len(self.pending_requests())

    def outgoing_requests(self) -> list[ContactRequest]:
        outgoing = [r for r in self._requests.values() if r.direction is Direction.OUTGOING]
        return sorted(outgoing, key=lambda request: request.created_at)

    # -- sending -----------------------------------------------------------

    async def send_request(
        self,
        to_handle: str,
        message: Optional[str] = None,
        to_identity: Optional[str] = None,
    ) -> SendResult:
        """Send a contact request to a handle.

        Short-circuits without sending when the handle is already mapped.
        TransportError from the transport propagates and nothing is stored.
        """

        own = self._require_own_handle()
        if not is_valid_handle(to_handle, self._handles):
            raise ValidationError(f"invalid handle {to_handle!r}")
        if to_handle == own:
            raise ValidationError("cannot send a contact request to your own handle")
        if self._identity_map.has_mapping(to_handle):
            LOGGER.info("Handle %s is already connected, request not sent", to_handle)
            return SendResult(SendStatus.ALREADY_CONNECTED)

        target = normalize_identity(to_identity) if to_identity else self._registry.identity_for(to_handle)
        own_identity = await self._transport.current_identity()
        if not own_identity:
            raise ValidationError("transport has no current identity")

        request_id = self._id_factory()
        payload = ContactRequestPayload(
            from_handle=own,
            to_handle=to_handle,
            request_id=request_id,
            message=message,
        )
        room_id = await self._transport.create_direct_room(target)
        await self._transport.send_payload(room_id, payload.to_dict())

        request = ContactRequest(
            id=request_id,
            from_handle=own,
            from_identity=own_identity,
            to_handle=to_handle,
            to_identity=target,
            created_at=self._wall_clock(),
            status=RequestStatus.PENDING,
            direction=Direction.OUTGOING,
            message=message,
            room_id=room_id,
        )
        self._store_request(request)
        LOGGER.info("Contact request %s sent from %s to %s", request_id, own, to_handle)
        self._observers.emit(HandshakeEvent("sent", request))
        return SendResult(SendStatus.SENT, request)

    # -- inbound -----------------------------------------------------------

    def handle_inbound(self, envelope: InboundEnvelope) -> Optional[ContactRequest]:
        """Apply an inbound payload. Unknown or malformed payloads are ignored."""

        try:
            payload = parse_payload(envelope.payload)
            sender = normalize_identity(envelope.sender_identity)
        except ValidationError as exc:
            LOGGER.warning("Ignoring malformed payload in room %s: %s", envelope.room_id[:8], exc)
            return None

        if isinstance(payload, ContactRequestPayload):
            return self._receive_request(payload, sender, envelope.room_id)
        if isinstance(payload, ContactAcceptedPayload):
            return self._receive_acceptance(payload, sender)
        LOGGER.debug("Ignoring payload of unknown type in room %s", envelope.room_id[:8])
        return None

    def _receive_request(
        self,
        payload: ContactRequestPayload,
        sender: str,
        room_id: str,
    ) -> Optional[ContactRequest]:
        own = self._own_handle()
        if payload.to_handle != own:
            LOGGER.info("Ignoring contact request %s addressed to another handle", payload.request_id)
            return None
        if not is_valid_handle(payload.from_handle, self._handles):
            LOGGER.warning("Ignoring contact request %s with invalid sender handle", payload.request_id)
            return None

        existing = self._requests.get(payload.request_id)
        if existing is not None and existing.is_resolved:
            LOGGER.info("Ignoring replay of resolved contact request %s", payload.request_id)
            return existing

        request = ContactRequest(
            id=payload.request_id,
            from_handle=payload.from_handle,
            from_identity=sender,
            to_handle=payload.to_handle,
            to_identity=None,
            created_at=existing.created_at if existing else self._wall_clock(),
            status=RequestStatus.PENDING,
            direction=Direction.INCOMING,
            message=payload.message,
            room_id=room_id,
        )
        self._store_request(request)
        LOGGER.info("Contact request %s received from %s", request.id, request.from_handle)
        self._observers.emit(HandshakeEvent("received", request))
        return request

    def _receive_acceptance(self, payload: ContactAcceptedPayload, sender: str) -> Optional[ContactRequest]:
        request = self._requests.get(payload.request_id)
        if (
            request is None
            or request.direction is not Direction.OUTGOING
            or payload.to_handle != request.from_handle
            or payload.from_handle != request.to_handle
        ):
            LOGGER.info("Ignoring acceptance for unknown request %s", payload.request_id)
            return None
        if request.to_identity and request.to_identity != sender:
            LOGGER.warning("Ignoring acceptance for %s from an unexpected identity", payload.request_id)
            return None
        if request.status is RequestStatus.ACCEPTED:
            return request
        if request.status is RequestStatus.REJECTED:
            LOGGER.info("Ignoring acceptance for locally withdrawn request %s", payload.request_id)
            return request

        request = replace(request, status=RequestStatus.ACCEPTED)
        self._store_request(request)
        try:
            self._identity_map.add_mapping(request.to_handle, sender)
        except ConflictError as exc:
            LOGGER.warning("Accepted request %s but mapping conflicts: %s", request.id, exc)
        LOGGER.info("Contact request %s accepted by %s", request.id, request.to_handle)
        self._observers.emit(HandshakeEvent("accepted", request))
        return request

    # -- decisions ---------------------------------------------------------

    def _incoming(self, request_id: str) -> ContactRequest:
        request = self.get_request(request_id)
        if request.direction is not Direction.INCOMING or request.to_handle != self._own_handle():
            raise ValidationError(f"contact request {request_id} is not addressed to this handle")
        return request

    async def accept(self, request_id: str) -> AcceptResult:
        """Accept an incoming request. A second accept is a no-op success.

        When an earlier acceptance could not be delivered, accepting again
        re-sends it; the mapping write is never repeated.
        """

        request = self._incoming(request_id)
        if request.status is RequestStatus.REJECTED:
            raise ConflictError(f"contact request {request_id} was already rejected")
        if request.status is RequestStatus.ACCEPTED:
            if not request.acceptance_sent:
                LOGGER.info("Re-sending undelivered acceptance for %s", request_id)
                request = await self._send_acceptance(request)
            return AcceptResult(request=request, mapping_written=False, already_accepted=True)

        request = replace(request, status=RequestStatus.ACCEPTED)
        self._store_request(request)

        conflict: Optional[ConflictError] = None
        written = False
        try:
            written = self._identity_map.add_mapping(request.from_handle, request.from_identity)
        except ConflictError as exc:
            # The identity map stays authoritative; report instead of overwriting.
            conflict = exc
            LOGGER.warning("Accepted request %s but mapping conflicts: %s", request_id, exc)

        self._observers.emit(HandshakeEvent("accepted", request))

        request = await self._send_acceptance(request)
        LOGGER.info("Contact request %s accepted", request_id)
        return AcceptResult(request=request, mapping_written=written, mapping_conflict=conflict)

    async def _send_acceptance(self, request: ContactRequest) -> ContactRequest:
        acceptance = ContactAcceptedPayload(
            from_handle=request.to_handle,
            to_handle=request.from_handle,
            request_id=request.id,
        )
        try:
            room_id = request.room_id or await self._transport.create_direct_room(request.from_identity)
            await self._transport.send_payload(room_id, acceptance.to_dict())
        except TransportError:
            LOGGER.error("Accepted request %s but the acceptance could not be delivered", request.id)
            raise

        request = replace(request, acceptance_sent=True)
        self._store_request(request)
        return request

    def reject(self, request_id: str) -> ContactRequest:
        """Reject an incoming request. Rejecting twice is a no-op."""

        request = self._incoming(request_id)
        if request.status is RequestStatus.REJECTED:
            return request
        if request.status is RequestStatus.ACCEPTED:
            raise ConflictError(f"contact request {request_id} was already accepted")

        request = replace(request, status=RequestStatus.REJECTED)
        self._store_request(request)
        LOGGER.info("Contact request %s rejected", request_id)
        self._observers.emit(HandshakeEvent("rejected", request))
        return request

    def clear(self) -> None:
        self._observers.clear()
