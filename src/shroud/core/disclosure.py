"""Hold-to-reveal disclosure state machine.

Per message:

    HIDDEN --press_start--> HOLDING --ramp elapsed--> REVEALED
    HOLDING --release/cancel--> HIDDEN
    REVEALED --release/cancel--> HIDDEN
    REVEALED --countdown elapsed--> AUTO_BLURRING --blur-out elapsed--> HIDDEN

Each session owns one TimerSlot, so arming the next phase always cancels the
previous one. Content is never stored: it is pulled from the message's content
source every time it is read while revealed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from shroud.core.config import DisclosureConfig
from shroud.core.errors import NotFoundError
from shroud.core.models import DisclosureSnapshot, DisclosureState
from shroud.core.observers import Observers, Subscription
from shroud.core.ports import SchedulerPort
from shroud.core.timers import TimerSlot

LOGGER = logging.getLogger(__name__)

MASK_CHAR = "█"
_NON_SPACE = re.compile(r"\S")

ContentSource = Callable[[], str]


@dataclass(frozen=True)
class DisclosureEvent:
    message_id: str
    previous: DisclosureState
    current: DisclosureState


class DisclosureSession:
    """Disclosure state for one message in one client instance."""

    def __init__(self, message_id: str, content_source: ContentSource, timer: TimerSlot) -> None:
        self.message_id = message_id
        self.content_source = content_source
        self.state = DisclosureState.HIDDEN
        self.revealed_at: Optional[float] = None
        self.timer = timer


def mask_content(content: str) -> str:
    """Replace every non-whitespace character so the layout is preserved."""

    return _NON_SPACE.sub(MASK_CHAR, content)


class DisclosureController:
    """Owns every disclosure session of a client session."""

    def __init__(self, config: DisclosureConfig, scheduler: SchedulerPort) -> None:
        self._config = config
        self._scheduler = scheduler
        self._sessions: dict[str, DisclosureSession] = {}
        self._observers: Observers[DisclosureEvent] = Observers("disclosure")

    def subscribe(self, callback: Callable[[DisclosureEvent], None]) -> Subscription:
        return self._observers.subscribe(callback)

    def track(self, message_id: str, content_source: ContentSource) -> DisclosureSnapshot:
        """Register a message; re-tracking keeps state and swaps the source."""

        session = self._sessions.get(message_id)
        if session is None:
            session = DisclosureSession(
                message_id,
                content_source,
                TimerSlot(self._scheduler, f"disclosure {message_id[:8]}"),
            )
            self._sessions[message_id] = session
        else:
            session.content_source = content_source
        return self._snapshot(session)

    def _get(self, message_id: str) -> DisclosureSession:
        session = self._sessions.get(message_id)
        if session is None:
            raise NotFoundError(f"message {message_id} is not tracked")
        return session

    def _transition(self, session: DisclosureSession, new_state: DisclosureState) -> None:
        previous = session.state
        session.state = new_state
        LOGGER.debug("Message %s: %s -> %s", session.message_id[:8], previous.value, new_state.value)
        self._observers.emit(DisclosureEvent(session.message_id, previous, new_state))

    # -- gestures ----------------------------------------------------------

    def press_start(self, message_id: str) -> DisclosureState:
        session = self._get(message_id)
        if session.state is not DisclosureState.HIDDEN:
            return session.state
        self._transition(session, DisclosureState.HOLDING)
        session.timer.arm(self._config.ramp_seconds, lambda: self._ramp_completed(session))
        return session.state

    def press_release(self, message_id: str) -> DisclosureState:
        session = self._get(message_id)
        if session.state in (DisclosureState.HOLDING, DisclosureState.REVEALED):
            session.timer.cancel()
            self._hide(session)
        return session.state

    def press_cancel(self, message_id: str) -> DisclosureState:
        return self.press_release(message_id)

    # -- timer callbacks ---------------------------------------------------

    def _ramp_completed(self, session: DisclosureSession) -> None:
        if session.state is not DisclosureState.HOLDING:
            return
        session.revealed_at = self._scheduler.now()
        self._transition(session, DisclosureState.REVEALED)
        session.timer.arm(self._config.countdown_seconds, lambda: self._countdown_expired(session))

    def _countdown_expired(self, session: DisclosureSession) -> None:
        if session.state is not DisclosureState.REVEALED:
            return
        self._transition(session, DisclosureState.AUTO_BLURRING)
        if self._config.blur_out_seconds <= 0:
            self._hide(session)
            return
        session.timer.arm(self._config.blur_out_seconds, lambda: self._blur_finished(session))

    def _blur_finished(self, session: DisclosureSession) -> None:
        if session.state is DisclosureState.AUTO_BLURRING:
            self._hide(session)

    def _hide(self, session: DisclosureSession) -> None:
        session.revealed_at = None
        self._transition(session, DisclosureState.HIDDEN)

    # -- reads -------------------------------------------------------------

    def _snapshot(self, session: DisclosureSession) -> DisclosureSnapshot:
        remaining: Optional[float] = None
        if session.state is DisclosureState.REVEALED and session.revealed_at is not None:
            elapsed = self._scheduler.now() - session.revealed_at
            remaining = max(0.0, self._config.countdown_seconds - elapsed)
        return DisclosureSnapshot(
            message_id=session.message_id,
            state=session.state,
            revealed_at=session.revealed_at,
            remaining_seconds=remaining,
        )

    def snapshot(self, message_id: str) -> DisclosureSnapshot:
        return self._snapshot(self._get(message_id))

    def snapshots(self) -> list[DisclosureSnapshot]:
        return [self._snapshot(session) for session in self._sessions.values()]

    def visible_content(self, message_id: str) -> str:
        """Content while revealed, a mask of it otherwise.

        The source is called on every read; nothing decrypted is kept here.
        """

        session = self._get(message_id)
        content = session.content_source()
        if session.state is DisclosureState.REVEALED:
            return content
        return mask_content(content)

    # -- teardown ----------------------------------------------------------

    def discard(self, message_id: str) -> None:
        session = self._sessions.pop(message_id, None)
        if session is not None:
            session.timer.cancel()

    def clear_all(self) -> None:
        for session in self._sessions.values():
            session.timer.cancel()
        self._sessions.clear()
        self._observers.clear()

    def active_timer_count(self) -> int:
        return sum(1 for session in self._sessions.values() if session.timer.active)
