from __future__ import annotations

"""
Timer sources for the session core.

Every component that owns session state takes `scheduler.lock` (re-entrant) before
touching it, and every scheduled callback runs under the same lock. With one lock
there is no ordering between locks to get wrong, and the core behaves as a single
cooperative thread even when timers fire on their own threads.
"""

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol


Callback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    lock: threading.RLock

    def now_ms(self) -> float: ...

    def call_later(self, delay_ms: float, fn: Callback) -> TimerHandle: ...

    def cancel(self, handle: Optional[TimerHandle]) -> None: ...


class ThreadingScheduler:
    """
    Wall clock + `threading.Timer`. Callbacks run on timer threads, serialized by `lock`.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None):
        self.lock = threading.RLock()
        self.logger = logger or logging.getLogger("sessionkeeper.clock")
        self._timers: Dict[int, threading.Timer] = {}
        self._ids = itertools.count(1)
        self._timers_lock = threading.Lock()

    def now_ms(self) -> float:
        return time.time() * 1000.0

    def call_later(self, delay_ms: float, fn: Callback) -> "_ThreadTimer":
        timer_id = next(self._ids)
        handle = _ThreadTimer(scheduler=self, timer_id=timer_id)

        def _run() -> None:
            with self._timers_lock:
                self._timers.pop(timer_id, None)
            with self.lock:
                if handle.cancelled:
                    return
                try:
                    fn()
                except Exception:  # noqa: BLE001
                    self.logger.exception("scheduled callback failed")

        t = threading.Timer(max(0.0, float(delay_ms)) / 1000.0, _run)
        t.daemon = True
        t.name = f"sessionkeeper-timer-{timer_id}"
        with self._timers_lock:
            self._timers[timer_id] = t
        t.start()
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is not None:
            handle.cancel()

    def pending(self) -> int:
        with self._timers_lock:
            return len(self._timers)

    def shutdown(self) -> None:
        with self._timers_lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for t in timers:
            t.cancel()

    def _cancel_id(self, timer_id: int) -> None:
        with self._timers_lock:
            t = self._timers.pop(timer_id, None)
        if t is not None:
            t.cancel()


@dataclass
class _ThreadTimer:
    scheduler: ThreadingScheduler
    timer_id: int
    cancelled: bool = False

    def cancel(self) -> None:
        # flag first: a callback already waiting on the lock must see it
        self.cancelled = True
        self.scheduler._cancel_id(self.timer_id)


@dataclass(order=True)
class _Entry:
    due_ms: float
    seq: int
    fn: Callback = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Virtual clock for tests and simulations.

    - advance(ms): moves time forward, firing due callbacks in deadline order
    - skip(ms): moves time forward without firing anything (suspended/throttled runtime)
    - run_due(): fires whatever is overdue at the current time
    """

    def __init__(self, start_ms: float = 1_700_000_000_000.0, *, logger: Optional[logging.Logger] = None):
        self.lock = threading.RLock()
        self.logger = logger or logging.getLogger("sessionkeeper.clock")
        self._now = float(start_ms)
        self._queue: List[_Entry] = []
        self._seq = itertools.count()

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, fn: Callback) -> _Entry:
        entry = _Entry(due_ms=self._now + max(0.0, float(delay_ms)), seq=next(self._seq), fn=fn)
        heapq.heappush(self._queue, entry)
        return entry

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is not None:
            handle.cancel()

    def pending(self) -> int:
        return sum(1 for e in self._queue if not e.cancelled)

    def advance(self, ms: float) -> int:
        target = self._now + max(0.0, float(ms))
        fired = 0
        while True:
            entry = self._pop_due(target)
            if entry is None:
                break
            # callbacks observe the clock at their own deadline
            self._now = max(self._now, entry.due_ms)
            fired += self._fire(entry)
        self._now = target
        return fired

    def skip(self, ms: float) -> None:
        self._now += max(0.0, float(ms))

    def run_due(self) -> int:
        fired = 0
        while True:
            entry = self._pop_due(self._now)
            if entry is None:
                return fired
            fired += self._fire(entry)

    def _pop_due(self, limit_ms: float) -> Optional[_Entry]:
        while self._queue:
            head = self._queue[0]
            if head.cancelled:
                heapq.heappop(self._queue)
                continue
            if head.due_ms > limit_ms:
                return None
            return heapq.heappop(self._queue)
        return None

    def _fire(self, entry: _Entry) -> int:
        with self.lock:
            if entry.cancelled:
                return 0
            entry.cancelled = True
            try:
                entry.fn()
            except Exception:  # noqa: BLE001
                self.logger.exception("scheduled callback failed")
            return 1
