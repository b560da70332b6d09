from __future__ import annotations

import asyncio

import pytest

from fakes import FakeClock, FakeDirectory, ManualScheduler, MemoryStore
from shroud.core.config import DirectoryConfig, HandleConfig
from shroud.core.errors import ConflictError, DirectoryError, ExhaustedError, NotFoundError, ValidationError
from shroud.core.identity_map import LAST_REFRESH_KEY, IdentityMap, RefreshOutcome
from shroud.core.models import Origin


def _make_map(
    store: MemoryStore | None = None,
    directory: FakeDirectory | None = None,
    *,
    clock: FakeClock | None = None,
    scheduler: ManualScheduler | None = None,
    timeout_seconds: float = 1.0,
    digits: int = 2,
) -> IdentityMap:
    return IdentityMap(
        store or MemoryStore(),
        HandleConfig(digits=digits),
        DirectoryConfig(url="https://directory.invalid", timeout_seconds=timeout_seconds),
        directory,
        scheduler,
        wall_clock=clock or FakeClock(),
    )


def test_resolve_is_stable_after_add_mapping() -> None:
    identity_map = _make_map()

    assert identity_map.add_mapping("17", "@User_Alpha") is True

    assert identity_map.resolve("17") == "@user_alpha"
    assert identity_map.get_handle_for("@USER_ALPHA") == "17"
    assert identity_map.mappings()["17"].origin is Origin.LOCAL


def test_conflicting_mapping_keeps_first_identity() -> None:
    identity_map = _make_map()
    identity_map.add_mapping("20", "@user_alpha")

    with pytest.raises(ConflictError):
        identity_map.add_mapping("20", "@user_bravo")

    assert identity_map.resolve("20") == "@user_alpha"


def test_same_pair_is_idempotent_and_writes_once() -> None:
    store = MemoryStore()
    identity_map = _make_map(store)

    assert identity_map.add_mapping("20", "@user_alpha") is True
    writes = len(store.writes)
    assert identity_map.add_mapping("20", "@user_alpha") is False
    assert len(store.writes) == writes


def test_identity_cannot_take_two_handles() -> None:
    identity_map = _make_map()
    identity_map.add_mapping("20", "@user_alpha")

    with pytest.raises(ConflictError):
        identity_map.add_mapping("21", "@user_alpha")


def test_add_mapping_validates_inputs() -> None:
    identity_map = _make_map()

    with pytest.raises(ValidationError):
        identity_map.add_mapping("7", "@user_alpha")
    with pytest.raises(ValidationError):
        identity_map.add_mapping("17", "alpha")


def test_resolve_unknown_handle_raises_not_found() -> None:
    identity_map = _make_map()

    assert identity_map.lookup("42") is None
    with pytest.raises(NotFoundError):
        identity_map.resolve("42")
    with pytest.raises(NotFoundError):
        identity_map.get_handle_for("@nobody_here")


def test_removal_ends_resolution() -> None:
    identity_map = _make_map()
    identity_map.add_mapping("17", "@user_alpha")

    assert identity_map.remove_mapping("17") is True
    assert identity_map.remove_mapping("17") is False
    assert not identity_map.has_mapping("17")


def test_mappings_survive_reload() -> None:
    store = MemoryStore()
    _make_map(store).add_mapping("17", "@user_alpha")

    reloaded = _make_map(store)

    assert reloaded.load() == 1
    assert reloaded.resolve("17") == "@user_alpha"


def test_unreadable_store_degrades_to_empty_map() -> None:
    store = MemoryStore()
    store.fail_reads = True
    identity_map = _make_map(store)

    assert identity_map.load() == 0
    assert identity_map.mappings() == {}


def test_write_failure_keeps_in_memory_mapping() -> None:
    store = MemoryStore()
    store.fail_writes = True
    identity_map = _make_map(store)

    assert identity_map.add_mapping("17", "@user_alpha") is True
    assert identity_map.resolve("17") == "@user_alpha"


def test_generate_available_handle_returns_lowest_free() -> None:
    identity_map = _make_map()
    identity_map.add_mapping("10", "@user_alpha")
    identity_map.add_mapping("11", "@user_bravo")

    assert identity_map.generate_available_handle() == "12"


def test_generate_available_handle_exhausted() -> None:
    identity_map = _make_map(digits=1)
    for number in range(10):
        identity_map.add_mapping(str(number), f"user_id:{number + 1}")

    with pytest.raises(ExhaustedError):
        identity_map.generate_available_handle()


def test_refresh_never_overrides_local_mapping() -> None:
    directory = FakeDirectory({"20": "@user_bravo", "21": "@User_Charlie", "22": "@user_alpha"})
    identity_map = _make_map(directory=directory)
    identity_map.add_mapping("20", "@user_alpha")

    outcome = asyncio.run(identity_map.refresh_from_remote())

    assert outcome is RefreshOutcome.APPLIED
    assert identity_map.resolve("20") == "@user_alpha"
    assert identity_map.resolve("21") == "@user_charlie"
    assert identity_map.mappings()["21"].origin is Origin.REMOTE
    # identity already claimed locally
    assert not identity_map.has_mapping("22")


def test_malformed_snapshot_is_rejected_whole() -> None:
    store = MemoryStore()
    directory = FakeDirectory({"21": "@user_charlie", "bad": "@user_delta"})
    identity_map = _make_map(store, directory)

    outcome = asyncio.run(identity_map.refresh_from_remote())

    assert outcome is RefreshOutcome.REJECTED
    assert identity_map.mappings() == {}
    assert LAST_REFRESH_KEY not in store.data


@pytest.mark.parametrize(
    "snapshot",
    [
        {"21": "@user_charlie", "1²": "@user_alpha"},
        {"21": "@user_charlie", "١٧": "@user_alpha"},
        {"21": "@user_charlie", "22": "user_id:²"},
    ],
)
def test_non_ascii_digits_reject_whole_snapshot(snapshot) -> None:
    identity_map = _make_map(directory=FakeDirectory(snapshot))

    outcome = asyncio.run(identity_map.refresh_from_remote(force=True))

    assert outcome is RefreshOutcome.REJECTED
    assert identity_map.mappings() == {}


def test_non_object_snapshot_is_rejected() -> None:
    identity_map = _make_map(directory=FakeDirectory(["21", "@user_charlie"]))

    assert asyncio.run(identity_map.refresh_from_remote()) is RefreshOutcome.REJECTED


def test_refresh_timeout_falls_back_to_cache() -> None:
    directory = FakeDirectory({"21": "@user_charlie"}, delay=1.0)
    identity_map = _make_map(directory=directory, timeout_seconds=0.01)
    identity_map.add_mapping("17", "@user_alpha")

    outcome = asyncio.run(identity_map.refresh_from_remote())

    assert outcome is RefreshOutcome.TIMEOUT
    assert identity_map.resolve("17") == "@user_alpha"
    assert not identity_map.has_mapping("21")


def test_refresh_failure_is_not_raised() -> None:
    identity_map = _make_map(directory=FakeDirectory(error=DirectoryError("boom")))

    assert asyncio.run(identity_map.refresh_from_remote()) is RefreshOutcome.FAILED


def test_refresh_is_throttled_until_interval_elapses() -> None:
    clock = FakeClock()
    directory = FakeDirectory({"21": "@user_charlie"})
    identity_map = _make_map(directory=directory, clock=clock)

    assert asyncio.run(identity_map.refresh_from_remote()) is RefreshOutcome.APPLIED
    assert asyncio.run(identity_map.refresh_from_remote()) is RefreshOutcome.THROTTLED
    assert asyncio.run(identity_map.refresh_from_remote(force=True)) is RefreshOutcome.APPLIED

    clock.advance(24 * 60 * 60)
    assert asyncio.run(identity_map.refresh_from_remote()) is RefreshOutcome.APPLIED
    assert directory.calls == 3


def test_refresh_without_directory_is_unavailable() -> None:
    assert asyncio.run(_make_map().refresh_from_remote()) is RefreshOutcome.UNAVAILABLE


def test_scheduled_refresh_owns_one_timer_until_cancelled() -> None:
    scheduler = ManualScheduler()
    identity_map = _make_map(directory=FakeDirectory({"21": "@user_charlie"}), scheduler=scheduler)

    async def _run() -> None:
        identity_map.schedule_refresh()
        identity_map.schedule_refresh()
        assert identity_map.active_timer_count() == 1
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        identity_map.cancel_timers()

    asyncio.run(_run())

    assert identity_map.active_timer_count() == 0
    assert scheduler.pending() == 0
