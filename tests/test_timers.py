import logging
import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.services.timers import ManualTimerScheduler, ThreadingTimerScheduler


def test_zero_delay_never_runs_inline():
    clock = ManualTimerScheduler()
    fired = []

    clock.schedule(0, lambda: fired.append("x"))

    assert fired == []
    assert clock.run_pending() == 1
    assert fired == ["x"]


def test_advance_fires_in_due_order_then_schedule_order():
    clock = ManualTimerScheduler()
    fired = []
    clock.schedule(5, lambda: fired.append("b"))
    clock.schedule(2, lambda: fired.append("a"))
    clock.schedule(5, lambda: fired.append("c"))
    clock.schedule(9, lambda: fired.append("late"))

    assert clock.advance(5) == 3
    assert fired == ["a", "b", "c"]
    assert clock.pending_count == 1
    assert clock.elapsed == 5


def test_now_follows_virtual_clock():
    start = datetime(2030, 5, 1, tzinfo=timezone.utc)
    clock = ManualTimerScheduler(start=start)
    seen = []
    clock.schedule(3, lambda: seen.append(clock.now()))

    clock.advance(10)

    assert seen == [start + timedelta(seconds=3)]
    assert clock.now() == start + timedelta(seconds=10)


def test_cancel_before_fire_prevents_callback():
    clock = ManualTimerScheduler()
    fired = []
    handle = clock.schedule(1, lambda: fired.append(1))

    assert handle.cancel() is True
    assert handle.canceled
    assert clock.advance(100) == 0
    assert fired == []
    assert clock.pending_count == 0


def test_cancel_after_fire_is_noop_and_fires_once():
    clock = ManualTimerScheduler()
    fired = []
    handle = clock.schedule(1, lambda: fired.append(1))

    clock.advance(1)
    assert handle.fired
    assert handle.cancel() is False
    clock.advance(100)
    assert fired == [1]


def test_cancel_from_inside_callback_is_noop():
    clock = ManualTimerScheduler()
    results = []
    holder = {}
    holder["h"] = clock.schedule(1, lambda: results.append(holder["h"].cancel()))

    clock.advance(1)

    assert results == [False]


def test_callback_may_schedule_more_timers():
    clock = ManualTimerScheduler()
    fired = []
    clock.schedule(1, lambda: clock.schedule(1, lambda: fired.append("chained")))

    clock.advance(1)
    assert fired == []
    clock.advance(1)
    assert fired == ["chained"]


def test_failing_callback_is_logged_and_others_still_fire(caplog):
    clock = ManualTimerScheduler()
    fired = []

    def boom():
        raise RuntimeError("boom")

    clock.schedule(1, boom)
    clock.schedule(1, lambda: fired.append("ok"))

    with caplog.at_level(logging.ERROR, logger="app.services.timers"):
        assert clock.advance(1) == 2

    assert fired == ["ok"]
    assert "timer callback failed" in caplog.text


def test_negative_values_rejected():
    clock = ManualTimerScheduler()
    with pytest.raises(ValueError):
        clock.schedule(-1, lambda: None)
    with pytest.raises(ValueError):
        clock.advance(-0.5)
    with pytest.raises(ValueError):
        ThreadingTimerScheduler().schedule(-1, lambda: None)


def test_threading_scheduler_fires_zero_delay_on_another_thread():
    scheduler = ThreadingTimerScheduler()
    done = threading.Event()
    where = []

    def on_fire():
        where.append(threading.current_thread().name)
        done.set()

    handle = scheduler.schedule(0, on_fire)

    assert done.wait(timeout=5)
    assert where[0].startswith("task-timer-")
    assert where[0] != threading.current_thread().name
    assert handle.cancel() is False


def test_threading_scheduler_cancel_prevents_fire():
    scheduler = ThreadingTimerScheduler()
    done = threading.Event()

    handle = scheduler.schedule(0.2, done.set)

    assert handle.cancel() is True
    assert not done.wait(timeout=0.5)
    assert handle.canceled
    assert scheduler.now().tzinfo is not None


def test_threading_scheduler_uses_one_thread_for_many_timers():
    scheduler = ThreadingTimerScheduler(name_prefix="bulk-timer")
    before = threading.active_count()

    handles = [scheduler.schedule(86400, lambda: None) for _ in range(500)]

    assert threading.active_count() - before <= 1
    assert scheduler.pending_count == 500

    for h in handles[:400]:
        assert h.cancel() is True
    assert scheduler.pending_count == 100
    scheduler.close()
    assert not any(t.name.startswith("bulk-timer") for t in threading.enumerate())


def test_threading_scheduler_fires_in_due_order():
    scheduler = ThreadingTimerScheduler()
    fired = []
    done = threading.Event()

    scheduler.schedule(0.3, lambda: (fired.append("c"), done.set()))
    scheduler.schedule(0.1, lambda: fired.append("a"))
    scheduler.schedule(0.2, lambda: fired.append("b"))

    assert done.wait(timeout=5)
    assert fired == ["a", "b", "c"]
    scheduler.close()


def test_threading_scheduler_restarts_after_close():
    scheduler = ThreadingTimerScheduler()
    scheduler.schedule(0, lambda: None)
    scheduler.close()

    done = threading.Event()
    scheduler.schedule(0, done.set)

    assert done.wait(timeout=5)
    scheduler.close()
