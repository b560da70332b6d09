import pytest

from fakes import FakeClock, MemoryStore
from shroud.core.errors import ConflictError, ValidationError
from shroud.core.nicknames import NICKNAMES_KEY, NicknameBook


def test_nickname_is_upper_cased_and_displayed() -> None:
    book = NicknameBook(MemoryStore(), wall_clock=FakeClock())

    book.set_nickname("17", "jd")

    assert book.get_nickname("17") == "JD"
    assert book.display_name("17") == "17 (JD)"
    assert book.short_display_name("17") == "JD"
    assert book.display_name("32") == "32"


def test_nickname_must_be_two_letters() -> None:
    book = NicknameBook(MemoryStore(), wall_clock=FakeClock())

    for value in ("J", "JDX", "J1", ""):
        with pytest.raises(ValidationError):
            book.set_nickname("17", value)


def test_nickname_unique_across_handles() -> None:
    book = NicknameBook(MemoryStore(), wall_clock=FakeClock())
    book.set_nickname("17", "JD")

    with pytest.raises(ConflictError):
        book.set_nickname("32", "jd")
    # same handle may keep its own nickname
    book.set_nickname("17", "JD")


def test_update_keeps_created_at() -> None:
    clock = FakeClock()
    book = NicknameBook(MemoryStore(), wall_clock=clock)
    first = book.set_nickname("17", "JD")

    clock.advance(60)
    second = book.set_nickname("17", "AB")

    assert second.created_at == first.created_at
    assert second.updated_at == first.updated_at + 60


def test_nicknames_reload_and_clear() -> None:
    store = MemoryStore()
    book = NicknameBook(store, wall_clock=FakeClock())
    book.set_nickname("17", "JD")

    reloaded = NicknameBook(store, wall_clock=FakeClock())
    assert reloaded.load() == 1
    assert reloaded.remove_nickname("17") is True
    assert reloaded.remove_nickname("17") is False

    reloaded.clear()
    assert NICKNAMES_KEY not in store.data
