from __future__ import annotations

import collections
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sessionkeeper.core.events.models import BaseEvent, EventSeverity, SourceSubsystem
from sessionkeeper.core.events.stats import LifecycleTally


EventHandler = Callable[[BaseEvent], None]


class EventBusConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    keep_recent: int = Field(default=200, ge=10, le=10_000)


@dataclass
class _Sub:
    event_type: str
    handler: EventHandler
    priority: int


class EventBus:
    """
    In-process synchronous event bus.

    - publish delivers before returning, unless called from inside a handler; nested
      events are queued and delivered after the current one (emission order is kept)
    - subscribers run in priority order (lower first)
    - handler failures are isolated (caught) and emitted as error events
    """

    def __init__(self, *, cfg: Optional[EventBusConfig] = None, logger: Optional[logging.Logger] = None, event_logger=None):
        self.cfg = cfg or EventBusConfig()
        self.logger = logger or logging.getLogger("sessionkeeper.events")
        self.event_logger = event_logger

        self._lock = threading.Lock()
        self._subs: List[_Sub] = []
        self._pending: Deque[BaseEvent] = collections.deque()
        self._dispatching = False
        self._tally = LifecycleTally()
        self._recent_events: Deque[Dict[str, Any]] = collections.deque(maxlen=int(self.cfg.keep_recent))

    def enabled(self) -> bool:
        return bool(self.cfg.enabled)

    def subscribe(self, event_type: str, handler: EventHandler, priority: int = 50) -> Callable[[], None]:
        """
        event_type supports:
        - exact match ("session.expired")
        - prefix match ("session.*")
        - wildcard all ("*")

        Returns a callable that removes this subscription.
        """
        if not callable(handler):
            raise ValueError("handler must be callable")
        sub = _Sub(event_type=str(event_type), handler=handler, priority=int(priority))
        with self._lock:
            self._subs.append(sub)
            # stable sort: equal priorities keep subscription order
            self._subs.sort(key=lambda s: int(s.priority))

        def _unsubscribe() -> None:
            with self._lock:
                self._subs = [s for s in self._subs if s is not sub]

        return _unsubscribe

    def unsubscribe(self, handler: EventHandler) -> int:
        with self._lock:
            keep = [s for s in self._subs if s.handler is not handler]
            removed = len(self._subs) - len(keep)
            self._subs = keep
        return removed

    def publish(self, ev: BaseEvent) -> bool:
        if not self.cfg.enabled:
            return False
        with self._lock:
            self._pending.append(ev)
            self._tally.record(ev)
            self._recent_events.appendleft(ev.model_dump(mode="json"))
            if self._dispatching:
                return True
            self._dispatching = True
        try:
            self._drain()
        finally:
            with self._lock:
                self._dispatching = False
        return True

    def emit(self, event_type: str, source: SourceSubsystem, payload: Optional[Dict[str, Any]] = None, *, trace_id: Optional[str] = None, severity: EventSeverity = EventSeverity.INFO) -> bool:
        ev = BaseEvent(event_type=event_type, source_subsystem=source, severity=severity, trace_id=trace_id, payload=dict(payload or {}))
        return self.publish(ev)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            subscribers = len(self._subs)
            recent = list(self._recent_events)[:50]
        return {"enabled": self.enabled(), "subscribers": subscribers, **self._tally.snapshot(), "recent": recent}

    def list_subscribers(self) -> List[Dict[str, Any]]:
        with self._lock:
            subs = list(self._subs)
        return [{"event_type": s.event_type, "priority": s.priority, "handler": getattr(s.handler, "__name__", "handler")} for s in subs]

    def dump_recent(self, n: int = 200) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._recent_events)[: max(1, int(n))]

    def set_enabled(self, enabled: bool) -> None:
        self.cfg.enabled = bool(enabled)

    # ---- internals ----
    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._pending:
                    return
                ev = self._pending.popleft()
                subs = list(self._subs)
            if self.event_logger is not None:
                try:
                    self.event_logger.log(ev.trace_id or ev.event_id, ev.event_type, ev.payload)
                except OSError as e:
                    self.logger.warning("event log write failed: %s", e)
            delivered = 0
            for s in subs:
                if _match(s.event_type, ev.event_type):
                    self._safe_handle(s.handler, ev)
                    delivered += 1
            if delivered:
                self._tally.delivered(delivered)

    def _safe_handle(self, handler: EventHandler, ev: BaseEvent) -> None:
        try:
            handler(ev)
        except Exception as e:  # noqa: BLE001
            self._tally.handler_failed()
            self.logger.exception("event handler %s failed for %s", getattr(handler, "__name__", "handler"), ev.event_type)
            if ev.event_type == "error.raised":
                # avoid recursion storms
                return
            err_ev = BaseEvent(
                event_type="error.raised",
                trace_id=ev.trace_id,
                source_subsystem=SourceSubsystem.events,
                severity=EventSeverity.ERROR,
                payload={"handler": getattr(handler, "__name__", "handler"), "event_type": ev.event_type, "error": str(e)[:500]},
            )
            with self._lock:
                self._pending.append(err_ev)
                self._tally.record(err_ev)


def _match(subscribed: str, event_type: str) -> bool:
    subscribed = str(subscribed)
    if subscribed == "*":
        return True
    if subscribed.endswith(".*"):
        return str(event_type).startswith(subscribed[:-2])
    return subscribed == event_type
