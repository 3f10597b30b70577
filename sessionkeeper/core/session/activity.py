from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class ActivitySignal(str, Enum):
    POINTER_DOWN = "pointer-down"
    POINTER_MOVE = "pointer-move"
    KEY_PRESS = "key-press"
    SCROLL = "scroll"
    TOUCH_START = "touch-start"
    CLICK = "click"
    KEY_DOWN = "key-down"


ACTIVITY_SIGNALS = tuple(s.value for s in ActivitySignal)
VISIBILITY_CHANGE = "visibility-change"


@dataclass(frozen=True)
class Signal:
    name: str
    detail: Dict[str, Any] = field(default_factory=dict)


SignalListener = Callable[[Signal], None]


class SignalHub:
    """
    Event target fed by the host (CLI, UI toolkit, test). Mirrors addEventListener
    semantics: registering the same listener twice for one signal is a no-op.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("sessionkeeper.signals")
        self._lock = threading.Lock()
        self._listeners: Dict[str, List[SignalListener]] = {}

    def add_listener(self, name: str, fn: SignalListener) -> None:
        key = _name(name)
        with self._lock:
            bucket = self._listeners.setdefault(key, [])
            if fn not in bucket:
                bucket.append(fn)

    def remove_listener(self, name: str, fn: SignalListener) -> bool:
        key = _name(name)
        with self._lock:
            bucket = self._listeners.get(key) or []
            if fn not in bucket:
                return False
            bucket.remove(fn)
            return True

    def emit(self, name: str, **detail: Any) -> int:
        key = _name(name)
        with self._lock:
            listeners = list(self._listeners.get(key) or [])
        sig = Signal(name=key, detail=dict(detail))
        for fn in listeners:
            try:
                fn(sig)
            except Exception:  # noqa: BLE001
                self.logger.exception("signal listener failed for %s", key)
        return len(listeners)

    def listener_count(self, name: Optional[str] = None) -> int:
        with self._lock:
            if name is None:
                return sum(len(v) for v in self._listeners.values())
            return len(self._listeners.get(_name(name)) or [])


def _name(name: Any) -> str:
    if isinstance(name, Enum):
        return str(name.value)
    return str(name)


class ActivityMonitor:
    """
    Listens for the user-interaction signal set and reports every occurrence
    (no debouncing).
    """

    def __init__(self, hub: SignalHub, *, logger: Optional[logging.Logger] = None):
        self.hub = hub
        self.logger = logger or logging.getLogger("sessionkeeper.session.activity")
        self._on_activity: Optional[Callable[[], None]] = None

    def start(self, on_activity: Callable[[], None]) -> None:
        if self._on_activity is not None:
            self.stop()
        self._on_activity = on_activity
        for name in ACTIVITY_SIGNALS:
            self.hub.add_listener(name, self._handle)

    def stop(self) -> None:
        if self._on_activity is None:
            return
        for name in ACTIVITY_SIGNALS:
            self.hub.remove_listener(name, self._handle)
        self._on_activity = None

    def is_running(self) -> bool:
        return self._on_activity is not None

    def _handle(self, _signal: Signal) -> None:
        cb = self._on_activity
        if cb is not None:
            cb()
