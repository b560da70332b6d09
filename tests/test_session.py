from __future__ import annotations

import asyncio

import pytest

from fakes import FakeClock, FakeDirectory, FakeTransport, ManualScheduler, MemoryStore
from shroud.core.config import CoreConfig, DirectoryConfig
from shroud.core.errors import ValidationError
from shroud.core.session import OWN_HANDLE_KEY, Session


def _make_session(store: MemoryStore | None = None, directory: FakeDirectory | None = None):
    scheduler = ManualScheduler()
    config = CoreConfig(directory=DirectoryConfig(url="https://directory.invalid"))
    session = Session(
        config,
        FakeTransport("@user_alpha"),
        store or MemoryStore(),
        scheduler,
        directory,
        wall_clock=FakeClock(),
    )
    return session, scheduler


def test_claim_handle_persists_for_next_start() -> None:
    store = MemoryStore()
    first, _ = _make_session(store)
    first.claim_handle("17")

    second, _ = _make_session(store)
    second.start(refresh_directory=False)

    assert second.own_handle == "17"
    assert OWN_HANDLE_KEY in store.data


def test_claim_handle_validates() -> None:
    session, _ = _make_session()

    with pytest.raises(ValidationError):
        session.claim_handle("abc")


def test_current_identity_comes_from_transport() -> None:
    session, _ = _make_session()

    assert asyncio.run(session.current_identity()) == "@user_alpha"


def test_start_survives_unreadable_store() -> None:
    store = MemoryStore()
    store.data[OWN_HANDLE_KEY] = b"not json"
    session, _ = _make_session(store)

    session.start(refresh_directory=False)

    assert session.own_handle is None
    assert session.identity_map.mappings() == {}


def test_logout_cancels_every_timer_and_clears_state() -> None:
    directory = FakeDirectory({"21": "@user_charlie"})
    session, scheduler = _make_session(directory=directory)

    async def _run() -> None:
        session.start()
        session.presence.set_typing("room-a", "32", is_group=True)
        session.presence.mark_read("m1", "room-a", "32")
        session.disclosure.track("m1", lambda: "secret")
        session.disclosure.press_start("m1")
        assert session.active_timer_count() == 3

        session.logout()
        session.logout()

    asyncio.run(_run())

    assert session.active_timer_count() == 0
    assert scheduler.pending() == 0
    assert session.presence.stats() == {"rooms": 0, "receipts": 0, "typing_users": 0}
    assert session.disclosure.snapshots() == []


def test_display_name_uses_registry_label() -> None:
    session, _ = _make_session()
    handle = session.registry.generate_available_handle()
    session.registry.register_user(handle, "alice")

    assert session.display_name_for(handle) == f"{handle} • alice"
    assert session.display_name_for("5") == "5"


def test_display_names_load_with_session() -> None:
    store = MemoryStore()
    first, _ = _make_session(store)
    first.start(refresh_directory=False)
    first.display_names.set_user_display_name("Night Owl")
    first.display_names.set_display_name("32", "Work")

    second, _ = _make_session(store)
    second.start(refresh_directory=False)

    assert second.display_names.get_user_display_name() == "Night Owl"
    assert second.display_names.display_name_or_fallback("32") == "Work"
