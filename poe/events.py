"""
Ledger Event Infrastructure

Domain events emitted by the claim registry, and the sinks that receive them.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         EVENT INFRASTRUCTURE                         │
    │                                                                      │
    │  Domain Events         Event Log                 Event Bus           │
    │  ├─ ClaimCreated       ├─ Append-only            ├─ Typed pub/sub    │
    │  ├─ ClaimRevoked       ├─ Sequence numbers       ├─ Priorities       │
    │  └─ ClaimTransferred   ├─ Block stamping         ├─ Filters          │
    │                        └─ Forwarding             └─ Error isolation  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The registry emits at most one event per successful operation, synchronously,
through whatever EventSink it was given. Delivery to subscribers is
fire-and-forget: a failing bus handler never reaches the registry.

Usage
─────

    from poe.events import ClaimCreated, EventBus, EventLog

    bus = EventBus()

    @bus.subscribe(ClaimCreated)
    def on_created(event: ClaimCreated):
        print(f"{event.account} registered {event.claim.hex()}")

    log = EventLog(forward_to=bus)
    registry = ClaimRegistry(clock, events=log)

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    List,
    Optional,
    Protocol,
    Set,
    Type,
    runtime_checkable,
)

from poe.canonical import jcs_canonicalize
from poe.clock import Clock
from poe.observability import correlation_id_var

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


_ENVELOPE_FIELDS = frozenset({"event_id", "event_timestamp", "correlation_id", "metadata"})


@dataclass
class Event:
    """
    Base class for all ledger events.

    Envelope fields are populated automatically and excluded from equality,
    so two events compare equal when they describe the same fact.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()), compare=False)
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        compare=False,
    )
    correlation_id: Optional[str] = field(
        default_factory=lambda: correlation_id_var.get() or None,
        compare=False,
    )
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def payload(self) -> Dict[str, Any]:
        """Domain fields only."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in _ENVELOPE_FIELDS
        }

    def to_dict(self) -> Dict[str, Any]:
        """Serialize event to a JSON-ready dictionary."""
        data: Dict[str, Any] = {
            "event_type": self.event_type,
            "event_id": self.event_id,
            "event_timestamp": self.event_timestamp,
            "correlation_id": self.correlation_id,
            "metadata": dict(self.metadata),
        }
        for key, value in self.payload().items():
            if isinstance(value, bytes):
                data[key] = "0x" + value.hex()
            elif value is None or isinstance(value, (str, int)):
                data[key] = value
            else:
                data[key] = str(value)
        return data

    def digest(self) -> str:
        """Deterministic digest of the event's type and domain fields."""
        body = {"event_type": self.event_type, **self.payload()}
        return hashlib.sha256(jcs_canonicalize(body)).hexdigest()


# ════════════════════════════════════════════════════════════════════════════
# DOMAIN EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class ClaimCreated(Event):
    """Emitted when an account registers a new claim."""
    account: Hashable = None
    claim: bytes = b""


@dataclass
class ClaimRevoked(Event):
    """Emitted when the owner deletes a claim."""
    account: Hashable = None
    claim: bytes = b""


@dataclass
class ClaimTransferred(Event):
    """Emitted when the owner hands a claim to another account."""
    sender: Hashable = None
    claim: bytes = b""
    receiver: Hashable = None


DOMAIN_EVENTS: Dict[str, Type[Event]] = {
    cls.__name__: cls for cls in (ClaimCreated, ClaimRevoked, ClaimTransferred)
}


# ════════════════════════════════════════════════════════════════════════════
# EVENT SINK
# ════════════════════════════════════════════════════════════════════════════


@runtime_checkable
class EventSink(Protocol):
    """Receives events emitted by the registry."""

    def emit(self, event: Event) -> None:
        ...


@dataclass
class EventRecord:
    """An event as recorded by an EventLog."""
    sequence_number: int
    event: Event
    block_number: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_number": self.sequence_number,
            "block_number": self.block_number,
            "event": self.event.to_dict(),
        }


class EventLog:
    """
    Append-only in-memory event sink.

    Records every event with a global sequence number and, when a clock is
    supplied, the block height at which it was emitted. Events can be
    forwarded to a further sink (typically an EventBus) after recording.
    """

    def __init__(
        self,
        forward_to: Optional[EventSink] = None,
        clock: Optional[Clock] = None,
        max_records: Optional[int] = None,
    ):
        if max_records is not None and max_records < 1:
            raise ValueError("max_records must be positive or None")
        self._records: List[EventRecord] = []
        self._sequence_number = 0
        self._forward_to = forward_to
        self._clock = clock
        self._max_records = max_records
        self._lock = threading.RLock()

    def emit(self, event: Event) -> None:
        with self._lock:
            self._sequence_number += 1
            record = EventRecord(
                sequence_number=self._sequence_number,
                event=event,
                block_number=self._clock.now() if self._clock is not None else None,
            )
            self._records.append(record)

            # A failed forward is a failed emission: no record, no sequence number.
            if self._forward_to is not None:
                try:
                    self._forward_to.emit(event)
                except BaseException:
                    self._records = [r for r in self._records if r is not record]
                    if self._sequence_number == record.sequence_number:
                        self._sequence_number -= 1
                    raise

            if self._max_records is not None and len(self._records) > self._max_records:
                del self._records[: len(self._records) - self._max_records]

    def records(self) -> List[EventRecord]:
        with self._lock:
            return list(self._records)

    def events(self) -> List[Event]:
        with self._lock:
            return [r.event for r in self._records]

    def since(self, position: int) -> List[EventRecord]:
        """Records with a sequence number greater than position."""
        with self._lock:
            return [r for r in self._records if r.sequence_number > position]

    @property
    def position(self) -> int:
        """Sequence number of the last recorded event."""
        with self._lock:
            return self._sequence_number

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory event bus for pub/sub delivery of ledger events.

    Handlers run synchronously in priority order (higher first). A handler
    that raises is counted, logged and reported to on_error; the remaining
    handlers still run and publish() returns normally.

    Example:
        bus = EventBus()

        @bus.subscribe(ClaimCreated, ClaimTransferred)
        def audit(event):
            print(event.event_type)

        bus.publish(ClaimCreated(account="alice", claim=b"\\x01"))
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator to subscribe a handler to event types.

        With no event types the handler receives every event.
        """
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        """Unsubscribe a handler."""
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        """Deliver an event to all matching subscribers."""
        with self._lock:
            self._published_count += 1
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
                and (r.filter_func is None or r.filter_func(event))
            ]

        # Call handlers outside the lock
        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    emit = publish

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.error("%s", error, exc_info=True)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


# ════════════════════════════════════════════════════════════════════════════
# GLOBAL INSTANCE
# ════════════════════════════════════════════════════════════════════════════


_event_bus: Optional[EventBus] = None
_event_bus_lock = threading.Lock()


def get_event_bus() -> EventBus:
    """Get the process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        with _event_bus_lock:
            if _event_bus is None:
                _event_bus = EventBus()
    return _event_bus


__all__ = [
    "Event",
    "ClaimCreated",
    "ClaimRevoked",
    "ClaimTransferred",
    "DOMAIN_EVENTS",
    "EventSink",
    "EventRecord",
    "EventLog",
    "EventHandler",
    "EventHandlerRegistration",
    "EventHandlerError",
    "EventBus",
    "get_event_bus",
]
