# app/services/timers.py
"""
Cancellable deferred execution.

schedule(delay, on_fire) -> TimerHandle
- handle.cancel() prevents on_fire if it has not started yet (returns True),
  otherwise it is a no-op (returns False)
- on_fire runs at most once per handle
- delay=0 still runs later, never inline inside schedule()

Two backends:
- ThreadingTimerScheduler: one dispatcher thread over a heap, used by the service
- ManualTimerScheduler: virtual clock, time only moves on advance()
"""
from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, Union

log = logging.getLogger(__name__)

Seconds = Union[int, float]

_SCHEDULED = "scheduled"
_RUNNING = "running"
_DONE = "done"
_CANCELED = "canceled"


class TimerHandle:
    def __init__(self, on_fire: Callable[[], None], delay: Seconds) -> None:
        self._on_fire = on_fire
        self.delay = delay
        self._state = _SCHEDULED
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._state == _SCHEDULED

    @property
    def canceled(self) -> bool:
        return self._state == _CANCELED

    @property
    def fired(self) -> bool:
        return self._state in (_RUNNING, _DONE)

    def cancel(self) -> bool:
        with self._lock:
            if self._state != _SCHEDULED:
                return False
            self._state = _CANCELED
        self._release()
        return True

    def _release(self) -> None:
        """Backend hook: drop the underlying timer resource after cancel."""

    def _fire(self) -> bool:
        # started/canceled 플래그 전환은 lock 안에서만
        with self._lock:
            if self._state != _SCHEDULED:
                return False
            self._state = _RUNNING
        try:
            self._on_fire()
        except Exception:
            log.exception("timer callback failed (delay=%s)", self.delay)
        finally:
            with self._lock:
                self._state = _DONE
        return True


class TimerScheduler(Protocol):
    def now(self) -> datetime: ...

    def schedule(self, delay_seconds: Seconds, on_fire: Callable[[], None]) -> TimerHandle: ...

    def close(self) -> None: ...


class _QueuedTimerHandle(TimerHandle):
    def __init__(self, on_fire: Callable[[], None], delay: Seconds, on_release: Callable[[], None]) -> None:
        super().__init__(on_fire, delay)
        self._on_release = on_release

    def _release(self) -> None:
        self._on_release()


class ThreadingTimerScheduler:
    """
    Wall-clock timers served by one daemon dispatcher thread.

    Handles sit in a heap ordered by monotonic due time (ties in scheduling
    order). Canceled handles stay in the heap and are dropped when popped;
    the heap is compacted once they outnumber the live ones.
    """

    def __init__(self, name_prefix: str = "task-timer") -> None:
        self._name_prefix = name_prefix
        self._queue: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self._canceled = 0
        # close()마다 증가, 이전 세대 worker는 스스로 종료
        self._generation = 0
        self._worker: Optional[threading.Thread] = None

    @property
    def pending_count(self) -> int:
        with self._cond:
            return sum(1 for _, _, h in self._queue if h.pending)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def schedule(self, delay_seconds: Seconds, on_fire: Callable[[], None]) -> TimerHandle:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        handle = _QueuedTimerHandle(on_fire, delay_seconds, self._on_cancel)
        with self._cond:
            # worker 먼저 띄우고 나서 큐에 넣음 (실패 시 큐에 고아 handle 안 남게)
            self._ensure_worker()
            due = time.monotonic() + float(delay_seconds)
            heapq.heappush(self._queue, (due, next(self._seq), handle))
            self._cond.notify()
        return handle

    def close(self) -> None:
        """Stop the dispatcher and drop queued timers. The next schedule() starts a new one."""
        with self._cond:
            self._generation += 1
            self._queue.clear()
            self._canceled = 0
            worker, self._worker = self._worker, None
            self._cond.notify_all()
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=5)

    def _ensure_worker(self) -> None:
        # called with self._cond held
        if self._worker is not None and self._worker.is_alive():
            return
        worker = threading.Thread(
            target=self._run,
            args=(self._generation,),
            name=f"{self._name_prefix}-dispatcher",
            daemon=True,
        )
        worker.start()
        self._worker = worker

    def _on_cancel(self) -> None:
        with self._cond:
            self._canceled += 1
            if self._canceled * 2 > len(self._queue):
                self._queue = [entry for entry in self._queue if entry[2].pending]
                heapq.heapify(self._queue)
                self._canceled = 0
            self._cond.notify()

    def _next_due(self, generation: int) -> Optional[TimerHandle]:
        # called with self._cond held
        while generation == self._generation:
            if not self._queue:
                self._cond.wait()
                continue
            due, _, handle = self._queue[0]
            if not handle.pending:
                heapq.heappop(self._queue)
                self._canceled = max(0, self._canceled - 1)
                continue
            wait = due - time.monotonic()
            if wait > 0:
                self._cond.wait(wait)
                continue
            heapq.heappop(self._queue)
            return handle
        return None

    def _run(self, generation: int) -> None:
        while True:
            with self._cond:
                handle = self._next_due(generation)
            if handle is None:
                return
            handle._fire()


class ManualTimerScheduler:
    """
    Virtual clock for deterministic runs (tests, simulations).

    Nothing fires until advance()/run_pending() is called. Due timers fire in
    due-time order, ties in scheduling order, on the caller's thread.
    """

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._elapsed = 0.0
        self._queue: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()

    @property
    def elapsed(self) -> float:
        return self._elapsed

    @property
    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for _, _, h in self._queue if h.pending)

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def schedule(self, delay_seconds: Seconds, on_fire: Callable[[], None]) -> TimerHandle:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        handle = TimerHandle(on_fire, delay_seconds)
        with self._lock:
            heapq.heappush(self._queue, (self._elapsed + float(delay_seconds), next(self._seq), handle))
        return handle

    def advance(self, seconds: Seconds) -> int:
        """Move the clock forward and fire everything due. Returns how many callbacks ran."""
        if seconds < 0:
            raise ValueError("cannot move the clock backwards")
        target = self._elapsed + float(seconds)
        fired = 0
        while True:
            with self._lock:
                if not self._queue or self._queue[0][0] > target:
                    break
                due, _, handle = heapq.heappop(self._queue)
                self._elapsed = max(self._elapsed, due)
            # callback runs outside the queue lock; it may schedule more timers
            if handle._fire():
                fired += 1
        with self._lock:
            self._elapsed = target
        return fired

    def run_pending(self) -> int:
        return self.advance(0)

    def close(self) -> None:
        """No thread to stop; queued timers just stay unfired."""
