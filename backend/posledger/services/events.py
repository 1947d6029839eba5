"""
Event Bus
=========
Fans out ledger change notifications to every subscriber in this process
and, through forwarders, to remote peers.

Dispatch behavior:
1. publish() stamps a LedgerEvent and enqueues it; it never waits on subscribers
2. One dispatch thread owns the queue and drains it in order, so each
   subscriber sees events from a given producer thread in publish order
3. Subscriber exceptions are caught and logged per handler
4. Dispatch continues to the next subscriber
5. Locally originated events are then handed to forwarders (peer channel);
   events that arrived from a peer are never forwarded back

Delivery is at-least-once from the point of view of consumers: peers may
replay an event after a reconnect, so handlers should re-fetch or apply
idempotently.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from ..models.base import new_id
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow

logger = logging.getLogger("posledger.events")

ORIGIN_LOCAL = "local"
ORIGIN_PEER = "peer"


class EventTypes:
    ITEM_CHANGED = "item-changed"
    SHIFT_CHANGED = "shift-changed"
    CUSTOMER_CHANGED = "customer-changed"
    EXPENSE_ADDED = "expense-added"
    SUPPLY_ADDED = "supply-added"
    DEBT_CHANGED = "debt-changed"
    ADMIN_LOG_ADDED = "admin-log-added"
    PEER_JOINED = "peer-joined"
    PEER_LEFT = "peer-left"
    CATEGORY_CHANGED = "category-changed"
    PERIOD_ARCHIVED = "period-archived"

    ALL = (
        ITEM_CHANGED, SHIFT_CHANGED, CUSTOMER_CHANGED, EXPENSE_ADDED,
        SUPPLY_ADDED, DEBT_CHANGED, ADMIN_LOG_ADDED, PEER_JOINED, PEER_LEFT,
        CATEGORY_CHANGED, PERIOD_ARCHIVED,
    )
    PRESENCE = (PEER_JOINED, PEER_LEFT)


@dataclass(frozen=True)
class LedgerEvent:
    event_type: str
    payload: Any
    timestamp: datetime
    actor_id: Optional[str] = None
    section: Optional[str] = None
    origin: str = ORIGIN_LOCAL
    event_id: str = field(default_factory=new_id)

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "timestamp": to_utc_z(self.timestamp),
            "actor_id": self.actor_id,
            "section": self.section,
        }

    @classmethod
    def from_dict(cls, data: dict, *, origin: str = ORIGIN_PEER) -> "LedgerEvent":
        return cls(
            event_type=data["event_type"],
            payload=data.get("payload"),
            timestamp=parse_iso_datetime(data.get("timestamp")) or utcnow(),
            actor_id=data.get("actor_id"),
            section=data.get("section"),
            origin=origin,
            event_id=data.get("event_id") or new_id(),
        )


class Subscription:
    """Handle returned by EventBus.subscribe(); call it (or unsubscribe()) to stop delivery."""

    def __init__(
        self,
        bus: "EventBus",
        callback: Callable[[LedgerEvent], Any],
        event_types: Optional[Iterable[str]] = None,
        section: Optional[str] = None,
    ):
        self._bus = bus
        self.callback = callback
        self.event_types = frozenset(event_types) if event_types else None
        self.section = section
        self.active = True

    def matches(self, event: LedgerEvent) -> bool:
        if self.event_types is not None and event.event_type not in self.event_types:
            return False
        # Section-scoped subscribers still see unscoped events (presence, supplier debt)
        if self.section is not None and event.section not in (None, self.section):
            return False
        return True

    def unsubscribe(self) -> None:
        self._bus._remove(self)

    __call__ = unsubscribe


class EventBus:
    """
    Process-scoped event bus. Create one per app (or per test); there is no
    module-level instance.
    """

    _STOP = object()

    def __init__(self, actor_id: Optional[str] = None, *, name: str = "posledger-events"):
        self.actor_id = actor_id
        self._name = name
        self._queue: queue.Queue = queue.Queue()
        self._subscribers: list[Subscription] = []
        self._forwarders: list[Callable[[LedgerEvent], Any]] = []
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Subscription management
    # ------------------------------------------------------------------

    def subscribe(
        self,
        callback: Callable[[LedgerEvent], Any],
        event_types: Optional[Iterable[str]] = None,
        section: Optional[str] = None,
    ) -> Subscription:
        sub = Subscription(self, callback, event_types, section)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            sub.active = False
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def add_forwarder(self, forwarder: Callable[[LedgerEvent], Any]) -> Callable[[], None]:
        with self._lock:
            self._forwarders.append(forwarder)

        def _remove() -> None:
            with self._lock:
                if forwarder in self._forwarders:
                    self._forwarders.remove(forwarder)

        return _remove

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish(
        self,
        event_type: str,
        payload: Any = None,
        section: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> LedgerEvent:
        event = LedgerEvent(
            event_type=event_type,
            payload=payload,
            timestamp=utcnow(),
            actor_id=actor_id or self.actor_id,
            section=section,
        )
        self._enqueue(event)
        return event

    def deliver(self, event: LedgerEvent) -> None:
        """Inject an event received from a peer."""
        self._enqueue(event)

    def _enqueue(self, event: LedgerEvent) -> None:
        if self._closed:
            logger.debug("Event bus closed; dropping %s", event.event_type)
            return
        self._ensure_started()
        self._queue.put(event)

    def _ensure_started(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()

    # ------------------------------------------------------------------
    # Dispatch loop
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            try:
                if event is self._STOP:
                    return
                self._dispatch(event)
            finally:
                self._queue.task_done()

    def _dispatch(self, event: LedgerEvent) -> dict:
        """
        Deliver one event to all matching subscribers.

        This method NEVER raises; failures are logged and counted.
        """
        with self._lock:
            subscribers = [s for s in self._subscribers if s.matches(event)]
            forwarders = list(self._forwarders) if event.origin == ORIGIN_LOCAL else []

        result = {
            "event_type": event.event_type,
            "event_id": event.event_id,
            "subscribers_notified": 0,
            "subscribers_failed": 0,
        }

        for sub in subscribers:
            if not sub.active:
                continue
            handler_name = getattr(sub.callback, "__qualname__", repr(sub.callback))
            try:
                sub.callback(event)
                result["subscribers_notified"] += 1
            except Exception as exc:
                result["subscribers_failed"] += 1
                logger.error(
                    "Subscriber failed: %s for %s (event_id: %s): %s",
                    handler_name, event.event_type, event.event_id, exc,
                    exc_info=True,
                )

        for forward in forwarders:
            try:
                forward(event)
            except Exception:
                logger.warning("Forwarding %s to peers failed", event.event_type, exc_info=True)

        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def join(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued event has been dispatched. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def close(self, timeout: float = 5.0) -> None:
        if self._closed:
            return
        self._closed = True
        thread = self._thread
        if thread is not None and thread.is_alive():
            self._queue.put(self._STOP)
            thread.join(timeout)
