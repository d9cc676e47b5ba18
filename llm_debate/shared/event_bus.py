"""
Async event bus between the turn controller and the presentation layer.
Uses asyncio.Queue with typed events and pub/sub pattern.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Coroutine, Dict, List
from datetime import datetime

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event Types
# ---------------------------------------------------------------------------

class EventType(Enum):
    """All event types flowing through the system."""
    MESSAGE_APPENDED = auto()  # A turn completed and its message joined the history
    SESSION_STATUS = auto()    # Session state changed (start/stop/reset/finish)
    TURN_FAILED = auto()       # A provider call failed and halted the run


@dataclass
class Event:
    """Base event structure."""
    type: EventType
    data: Any
    timestamp: datetime = field(default_factory=datetime.now)
    source: str = ""


# ---------------------------------------------------------------------------
# Convenience Event Constructors
# ---------------------------------------------------------------------------

def message_event(speaker: str, content: str, round_count: int) -> Event:
    """Create an event for a newly appended message."""
    return Event(
        type=EventType.MESSAGE_APPENDED,
        data={"speaker": speaker, "content": content, "round": round_count},
        source="controller",
    )


def status_event(snapshot: Dict[str, Any]) -> Event:
    """Create a session status event carrying a full snapshot."""
    return Event(
        type=EventType.SESSION_STATUS,
        data=snapshot,
        source="controller",
    )


def turn_failed_event(speaker: str, error: str) -> Event:
    """Create a turn failure event."""
    return Event(
        type=EventType.TURN_FAILED,
        data={"speaker": speaker, "error": error},
        source="controller",
    )


# ---------------------------------------------------------------------------
# Event Bus
# ---------------------------------------------------------------------------

# Type alias for subscriber callbacks
Subscriber = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    """
    Async publish/subscribe event bus.

    Components publish typed events; interested subscribers receive them
    asynchronously. Each subscriber gets its own queue to avoid blocking.
    """

    def __init__(self, maxsize: int = 256):
        self._subscribers: Dict[EventType, List[asyncio.Queue]] = {}
        self._handlers: Dict[EventType, List[Subscriber]] = {}
        self._maxsize = maxsize
        self._running = False
        self._tasks: List[asyncio.Task] = []

    def subscribe(self, event_type: EventType, handler: Subscriber) -> None:
        """Register an async handler for a specific event type."""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
            self._handlers[event_type] = []
        q: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers[event_type].append(q)
        self._handlers[event_type].append(handler)
        logger.debug("Subscriber registered for %s", event_type.name)

    async def publish(self, event: Event) -> None:
        """Publish an event to all subscribers of its type."""
        for q in self._subscribers.get(event.type, []):
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    "Queue full for %s subscriber, dropping event", event.type.name
                )

    async def start(self) -> None:
        """Start dispatcher loops for all registered subscribers."""
        self._running = True
        for event_type, queues in self._subscribers.items():
            handlers = self._handlers[event_type]
            for q, handler in zip(queues, handlers):
                task = asyncio.create_task(
                    self._dispatch_loop(q, handler, event_type.name)
                )
                self._tasks.append(task)
        logger.info("EventBus started with %d dispatch loops", len(self._tasks))

    async def stop(self) -> None:
        """Stop all dispatcher loops."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("EventBus stopped")

    async def _dispatch_loop(
        self, queue: asyncio.Queue, handler: Subscriber, name: str
    ) -> None:
        """Continuously dispatch events from a queue to its handler."""
        while self._running:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=1.0)
                logger.debug(
                    "Dispatching %s from %s (published %s)",
                    name, event.source or "?", event.timestamp.isoformat(timespec="milliseconds"),
                )
                try:
                    await handler(event)
                except Exception:
                    logger.exception("Error in handler for %s", name)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
