"""Event and command buses connecting the runner with its observers."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(Enum):
    PHASE_CHANGED = "phase_changed"
    PROFILE_RESOLVED = "profile_resolved"
    TIER_STARTING = "tier_starting"
    TIER_READY = "tier_ready"
    SERVICE_STARTING = "service_starting"
    SERVICE_READY = "service_ready"
    SERVICE_FAILED = "service_failed"
    SERVICE_STOPPED = "service_stopped"
    RETRY_SCHEDULED = "retry_scheduled"
    SIGNAL_CAUGHT = "signal_caught"
    LOG_LINE = "log_line"


class Phase(Enum):
    STARTUP = "startup"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass
class Event:
    """Something that happened; critical events are never dropped."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    critical: bool = False


class CommandType(Enum):
    STOP_SERVICE = "stop_service"
    RESTART_SERVICE = "restart_service"
    STOP_ALL = "stop_all"


@dataclass
class Command:
    """A request sent to the runner."""

    type: CommandType
    data: dict[str, Any] = field(default_factory=dict)


class _Bus:
    """Fan-out to subscriber queues; ``None`` in a queue marks closure."""

    def __init__(self, buffer_size: int = 0) -> None:
        self._buffer_size = buffer_size
        self._subscribers: list[queue.Queue] = []
        self._lock = threading.Lock()
        self._closed = False

    def subscribe(self) -> queue.Queue:
        """Return a new queue receiving every item published from now on."""
        subscription: queue.Queue = queue.Queue()
        with self._lock:
            if self._closed:
                subscription.put(None)
            else:
                self._subscribers.append(subscription)
        return subscription

    def _deliver(self, item: Any, droppable: bool) -> None:
        with self._lock:
            if self._closed:
                return
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            if droppable and self._buffer_size and subscription.qsize() >= self._buffer_size:
                continue
            subscription.put(item)

    def close(self) -> None:
        """Stop delivery and tell every subscriber the bus is closed."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers = self._subscribers
            self._subscribers = []
        for subscription in subscribers:
            subscription.put(None)


class EventBus(_Bus):
    """Publishes events; non-critical events are dropped for a full subscriber."""

    def subscribe(self) -> queue.Queue:
        return super().subscribe()

    def publish(self, event: Event) -> None:
        self._deliver(event, droppable=not event.critical)

    def close(self) -> None:
        super().close()


class CommandBus(_Bus):
    """Publishes commands; commands are always delivered."""

    def subscribe(self) -> queue.Queue:
        return super().subscribe()

    def publish(self, command: Command) -> None:
        self._deliver(command, droppable=False)

    def close(self) -> None:
        super().close()