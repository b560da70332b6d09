import random

import pytest

from fakes import FakeClock, MemoryStore
from shroud.core.config import HandleConfig, RegistrationConfig
from shroud.core.errors import ConflictError, ExhaustedError, NotFoundError, ValidationError
from shroud.core.registration import UserRegistry


def _make_registry(store: MemoryStore = None, *, digits: int = 2, max_attempts: int = 100) -> UserRegistry:
    return UserRegistry(
        store or MemoryStore(),
        HandleConfig(digits=digits),
        RegistrationConfig(max_attempts=max_attempts),
        rng=random.Random(7),
        wall_clock=FakeClock(),
    )


def test_register_allocated_handle_with_label() -> None:
    registry = _make_registry()
    handle = registry.generate_available_handle()

    user = registry.register_user(handle, "Alice", identity="@User_Alpha")

    assert user.label == "alice"
    assert user.is_online
    assert registry.identity_for(handle) == "@user_alpha"
    assert registry.display_name_for(handle) == f"{handle} • alice"


def test_allocated_handles_are_never_handed_out_twice() -> None:
    registry = _make_registry(digits=1, max_attempts=500)

    handles = {registry.generate_available_handle() for _ in range(10)}

    assert handles == {str(n) for n in range(10)}
    with pytest.raises(ExhaustedError):
        registry.generate_available_handle()


def test_released_handle_can_be_drawn_again() -> None:
    registry = _make_registry(digits=1, max_attempts=500)
    handles = [registry.generate_available_handle() for _ in range(10)]

    registry.release_handle(handles[3])

    assert registry.generate_available_handle() == handles[3]


def test_unallocated_handle_cannot_register() -> None:
    registry = _make_registry()

    with pytest.raises(ValidationError):
        registry.register_user("42", "alice")


def test_handle_cannot_register_twice() -> None:
    registry = _make_registry()
    handle = registry.generate_available_handle()
    registry.register_user(handle, "alice")

    with pytest.raises(ConflictError):
        registry.register_user(handle, "bob")


def test_labels_are_unique_case_insensitively() -> None:
    registry = _make_registry()
    registry.register_user(registry.generate_available_handle(), "alice")
    second = registry.generate_available_handle()

    with pytest.raises(ConflictError):
        registry.register_user(second, "ALICE")
    assert registry.get_user(second) is None


@pytest.mark.parametrize("label", ["ab", "x" * 21, "has space", "dash-ed", ""])
def test_invalid_labels_are_rejected(label) -> None:
    registry = _make_registry()

    with pytest.raises(ValidationError):
        registry.register_user(registry.generate_available_handle(), label)


def test_registry_persists_and_reloads() -> None:
    store = MemoryStore()
    registry = _make_registry(store)
    handle = registry.generate_available_handle()
    registry.register_user(handle, "alice", identity="user_id:42")
    registry.set_online(handle, False)

    reloaded = _make_registry(store)

    assert reloaded.load() == 1
    assert reloaded.identity_for(handle) == "user_id:42"
    assert not reloaded.is_online(handle)


def test_unknown_handle_display_and_identity() -> None:
    registry = _make_registry()

    assert registry.display_name_for("55") == "55"
    with pytest.raises(NotFoundError):
        registry.identity_for("55")
