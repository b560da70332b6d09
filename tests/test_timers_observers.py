import asyncio

from fakes import ManualScheduler, MemoryStore
from shroud.adapters.asyncio_scheduler import AsyncioScheduler
from shroud.core.observers import Observers
from shroud.core.persistence import delete_key, load_json, save_json
from shroud.core.timers import TimerSlot


def test_rearming_slot_keeps_one_live_timer() -> None:
    scheduler = ManualScheduler()
    slot = TimerSlot(scheduler)
    fired: list[str] = []

    slot.arm(1.0, lambda: fired.append("first"))
    slot.arm(2.0, lambda: fired.append("second"))
    scheduler.advance(5.0)

    assert fired == ["second"]
    assert not slot.active


def test_cancelled_slot_never_fires() -> None:
    scheduler = ManualScheduler()
    slot = TimerSlot(scheduler)
    fired: list[str] = []

    slot.arm(1.0, lambda: fired.append("x"))
    slot.cancel()
    scheduler.advance(5.0)

    assert fired == []
    assert scheduler.pending() == 0


def test_failing_observer_does_not_block_others() -> None:
    observers: Observers[int] = Observers("test")
    seen: list[int] = []

    def _boom(event: int) -> None:
        raise RuntimeError("observer bug")

    observers.subscribe(_boom)
    observers.subscribe(seen.append)
    observers.emit(1)

    assert seen == [1]


def test_subscription_cancel_is_idempotent() -> None:
    observers: Observers[int] = Observers("test")
    subscription = observers.subscribe(lambda event: None)

    subscription.cancel()
    subscription.cancel()

    assert subscription.cancelled
    assert len(observers) == 0


def test_persistence_degrades_on_store_failure() -> None:
    store = MemoryStore()
    assert save_json(store, "k", {"a": 1}) is True
    assert load_json(store, "k", None) == {"a": 1}

    store.fail_reads = True
    store.fail_writes = True

    assert load_json(store, "k", "default") == "default"
    assert save_json(store, "k", {"a": 2}) is False
    assert delete_key(store, "k") is False


def test_asyncio_scheduler_drives_timer_slot() -> None:
    fired: list[float] = []

    async def _run() -> None:
        scheduler = AsyncioScheduler()
        slot = TimerSlot(scheduler, "asyncio")
        slot.arm(0.01, lambda: fired.append(scheduler.now()))
        assert slot.active
        await asyncio.sleep(0.05)
        assert not slot.active

    asyncio.run(_run())

    assert len(fired) == 1
