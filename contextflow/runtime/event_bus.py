"""
Event Bus - Pub/sub progress events for sessions and comparisons.

Allows observers to:
- Subscribe to lifecycle events of one session or comparison channel
- Read a channel as an async stream of events (one queue per reader)
- Forward every event to external sinks (e.g. an HTTP broadcast endpoint)

Delivery is best-effort: a failing handler or sink is logged and skipped.
Events of one channel are delivered in publish order.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of progress events."""

    # Session lifecycle
    SIMULATION_STARTED = "simulation_started"
    STEP_UPDATE = "step_update"
    SIMULATION_COMPLETED = "simulation_completed"
    SIMULATION_ERROR = "simulation_error"

    # Comparison lifecycle
    COMPARISON_STEP = "comparison_step"
    COMPARISON_COMPLETED = "comparison_completed"


TERMINAL_EVENT_TYPES = frozenset(
    {
        EventType.SIMULATION_COMPLETED,
        EventType.SIMULATION_ERROR,
        EventType.COMPARISON_COMPLETED,
    }
)


def record_payload(record: BaseModel) -> dict[str, Any]:
    """
    JSON-safe dict of a session, step or comparison record for event data.

    Values pydantic cannot render as JSON (e.g. non-UTF-8 bytes) are
    rendered with ``str()`` instead.
    """
    try:
        return record.model_dump(mode="json")
    except ValueError as e:
        logger.warning(f"Degrading unserializable {type(record).__name__} payload: {e}")
        return json.loads(json.dumps(record.model_dump(), default=str))


@dataclass
class ProgressEvent:
    """An event published on a session or comparison channel."""

    type: EventType
    channel: str  # session_id or comparison_id
    session_id: str | None = None
    comparison_id: str | None = None
    node_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type.value,
            "channel": self.channel,
            "session_id": self.session_id,
            "comparison_id": self.comparison_id,
            "node_id": self.node_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


# Type for event handlers
EventHandler = Callable[[ProgressEvent], Awaitable[None]]


@dataclass
class Subscription:
    """A subscription to events."""

    id: str
    event_types: set[EventType]
    handler: EventHandler
    filter_channel: str | None = None  # Only receive events from this channel
    filter_node: str | None = None  # Only receive events from this node


class EventSink(ABC):
    """Destination for published events. ``event.channel`` is the channel key."""

    @abstractmethod
    async def publish(self, event: ProgressEvent) -> None:
        """Deliver an event. Implementations must not raise for delivery failures."""


class HttpEventSink(EventSink):
    """
    POST every event as JSON to a broadcast endpoint.

    Body: ``{"channel": ..., "event": <type>, "payload": <event dict>}``.
    Failures are logged and dropped.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.headers = headers or {}
        self.timeout = timeout
        self._client = client

    async def publish(self, event: ProgressEvent) -> None:
        body = {"channel": event.channel, "event": event.type.value, "payload": event.to_dict()}
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=body, headers=self.headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=body, headers=self.headers)
            if not response.is_success:
                logger.warning(
                    f"Broadcast of {event.type} on {event.channel} rejected: HTTP {response.status_code}"
                )
        except httpx.HTTPError as e:
            logger.warning(f"Broadcast of {event.type} on {event.channel} failed: {e}")


class ChannelReader:
    """
    Async iterator over the events of one channel.

    Registered on creation, so no event published after ``EventBus.channel``
    returns is missed. Iteration stops after a terminal event unless
    ``until_terminal`` is False.
    """

    def __init__(self, bus: "EventBus", key: str, until_terminal: bool = True):
        self._bus = bus
        self.key = key
        self.until_terminal = until_terminal
        self.queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        self._done = False

    def __aiter__(self) -> "ChannelReader":
        return self

    async def __anext__(self) -> ProgressEvent:
        if self._done:
            raise StopAsyncIteration
        event = await self.queue.get()
        if self.until_terminal and event.is_terminal:
            self.close()
        return event

    async def __aenter__(self) -> "ChannelReader":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if not self._done:
            self._done = True
            self._bus._remove_reader(self)


class EventBus(EventSink):
    """
    Pub/sub event bus for session progress.

    Features:
    - Async event handling
    - Type-based subscriptions
    - Channel/node filtering
    - Queue-backed channel readers
    - Event history for reconciliation and debugging

    Example:
        bus = EventBus()

        async def on_step(event: ProgressEvent):
            print(event.data["status"])

        bus.subscribe(
            event_types=[EventType.STEP_UPDATE],
            handler=on_step,
            filter_channel=session_id,
        )
    """

    def __init__(
        self,
        max_history: int = 1000,
        max_concurrent_handlers: int = 10,
        sinks: list[EventSink] | None = None,
    ):
        """
        Initialize event bus.

        Args:
            max_history: Maximum events to keep in history
            max_concurrent_handlers: Maximum concurrent handler executions
            sinks: External sinks every event is forwarded to
        """
        self._subscriptions: dict[str, Subscription] = {}
        self._readers: dict[str, list[ChannelReader]] = {}
        self._sinks: list[EventSink] = list(sinks or [])
        self._event_history: list[ProgressEvent] = []
        self._max_history = max_history
        self._semaphore = asyncio.Semaphore(max_concurrent_handlers)
        self._subscription_counter = 0
        self._lock = asyncio.Lock()

    def add_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def subscribe(
        self,
        event_types: list[EventType],
        handler: EventHandler,
        filter_channel: str | None = None,
        filter_node: str | None = None,
    ) -> str:
        """
        Subscribe to events.

        Args:
            event_types: Types of events to receive
            handler: Async function to call when event occurs
            filter_channel: Only receive events from this channel
            filter_node: Only receive events from this node

        Returns:
            Subscription ID (use to unsubscribe)
        """
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"

        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event_types=set(event_types),
            handler=handler,
            filter_channel=filter_channel,
            filter_node=filter_node,
        )
        logger.debug(f"Subscription {sub_id} registered for {event_types}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Returns True if it existed."""
        if subscription_id in self._subscriptions:
            del self._subscriptions[subscription_id]
            logger.debug(f"Subscription {subscription_id} removed")
            return True
        return False

    def channel(self, key: str, until_terminal: bool = True) -> ChannelReader:
        """Open a queue-backed reader on one channel."""
        reader = ChannelReader(self, key, until_terminal=until_terminal)
        self._readers.setdefault(key, []).append(reader)
        return reader

    def _remove_reader(self, reader: ChannelReader) -> None:
        readers = self._readers.get(reader.key, [])
        if reader in readers:
            readers.remove(reader)
        if not readers:
            self._readers.pop(reader.key, None)

    async def publish(self, event: ProgressEvent) -> None:
        """
        Publish an event to readers, matching subscribers and sinks.

        Args:
            event: Event to publish
        """
        async with self._lock:
            self._event_history.append(event)
            if len(self._event_history) > self._max_history:
                self._event_history = self._event_history[-self._max_history :]

        for reader in list(self._readers.get(event.channel, [])):
            reader.queue.put_nowait(event)

        matching_handlers = [
            s.handler for s in list(self._subscriptions.values()) if self._matches(s, event)
        ]
        if matching_handlers:
            await self._execute_handlers(event, matching_handlers)

        for sink in self._sinks:
            try:
                await sink.publish(event)
            except Exception as e:
                logger.error(f"Sink error for {event.type}: {e}")

    def _matches(self, subscription: Subscription, event: ProgressEvent) -> bool:
        """Check if a subscription matches an event."""
        if event.type not in subscription.event_types:
            return False
        if subscription.filter_channel and subscription.filter_channel != event.channel:
            return False
        if subscription.filter_node and subscription.filter_node != event.node_id:
            return False
        return True

    async def _execute_handlers(
        self,
        event: ProgressEvent,
        handlers: list[EventHandler],
    ) -> None:
        """Execute handlers concurrently with rate limiting."""

        async def run_handler(handler: EventHandler) -> None:
            async with self._semaphore:
                try:
                    await handler(event)
                except Exception as e:
                    logger.error(f"Handler error for {event.type}: {e}")

        await asyncio.gather(*[run_handler(h) for h in handlers], return_exceptions=True)

    # === CONVENIENCE PUBLISHERS ===

    async def emit_simulation_started(
        self,
        session_id: str,
        graph_id: str | None,
        input_value: Any,
        node_count: int,
    ) -> None:
        await self.publish(
            ProgressEvent(
                type=EventType.SIMULATION_STARTED,
                channel=session_id,
                session_id=session_id,
                data={"graph_id": graph_id, "input": input_value, "node_count": node_count},
            )
        )

    async def emit_step_update(
        self,
        session_id: str,
        step: dict[str, Any],
        progress: float,
    ) -> None:
        await self.publish(
            ProgressEvent(
                type=EventType.STEP_UPDATE,
                channel=session_id,
                session_id=session_id,
                node_id=step.get("node_id"),
                data={"step": step, "status": step.get("status"), "progress": progress},
            )
        )

    async def emit_simulation_completed(self, session_id: str, session: dict[str, Any]) -> None:
        await self.publish(
            ProgressEvent(
                type=EventType.SIMULATION_COMPLETED,
                channel=session_id,
                session_id=session_id,
                data={"session": session},
            )
        )

    async def emit_simulation_error(
        self,
        session_id: str,
        error: str,
        node_id: str | None = None,
        session: dict[str, Any] | None = None,
    ) -> None:
        await self.publish(
            ProgressEvent(
                type=EventType.SIMULATION_ERROR,
                channel=session_id,
                session_id=session_id,
                node_id=node_id,
                data={"error": error, "node_id": node_id, "session": session or {}},
            )
        )

    async def emit_comparison_step(
        self,
        comparison_id: str,
        session_id: str | None,
        graph_id: str,
        graph_name: str,
        step: dict[str, Any],
        progress: float,
    ) -> None:
        await self.publish(
            ProgressEvent(
                type=EventType.COMPARISON_STEP,
                channel=comparison_id,
                session_id=session_id,
                comparison_id=comparison_id,
                node_id=step.get("node_id"),
                data={
                    "graph_id": graph_id,
                    "graph_name": graph_name,
                    "step_name": step.get("step_name"),
                    "status": step.get("status"),
                    "step": step,
                    "progress": progress,
                },
            )
        )

    async def emit_comparison_completed(self, comparison_id: str, comparison: dict[str, Any]) -> None:
        await self.publish(
            ProgressEvent(
                type=EventType.COMPARISON_COMPLETED,
                channel=comparison_id,
                comparison_id=comparison_id,
                data={"comparison": comparison},
            )
        )

    # === QUERY OPERATIONS ===

    def get_history(
        self,
        event_type: EventType | None = None,
        channel: str | None = None,
        limit: int = 100,
    ) -> list[ProgressEvent]:
        """
        Get event history with optional filtering.

        Returns:
            List of matching events (most recent first)
        """
        events = self._event_history[::-1]
        if event_type:
            events = [e for e in events if e.type == event_type]
        if channel:
            events = [e for e in events if e.channel == channel]
        return events[:limit]

    def get_stats(self) -> dict:
        """Get event bus statistics."""
        type_counts: dict[str, int] = {}
        for event in self._event_history:
            type_counts[event.type.value] = type_counts.get(event.type.value, 0) + 1

        return {
            "total_events": len(self._event_history),
            "subscriptions": len(self._subscriptions),
            "readers": sum(len(r) for r in self._readers.values()),
            "sinks": len(self._sinks),
            "events_by_type": type_counts,
        }

    # === WAITING OPERATIONS ===

    async def wait_for(
        self,
        event_type: EventType,
        channel: str | None = None,
        node_id: str | None = None,
        timeout: float | None = None,
    ) -> ProgressEvent | None:
        """
        Wait for a specific event to occur.

        Returns:
            The event if received, None if timeout
        """
        result: ProgressEvent | None = None
        event_received = asyncio.Event()

        async def handler(event: ProgressEvent) -> None:
            nonlocal result
            result = event
            event_received.set()

        sub_id = self.subscribe(
            event_types=[event_type],
            handler=handler,
            filter_channel=channel,
            filter_node=node_id,
        )

        try:
            if timeout:
                try:
                    await asyncio.wait_for(event_received.wait(), timeout=timeout)
                except TimeoutError:
                    return None
            else:
                await event_received.wait()

            return result
        finally:
            self.unsubscribe(sub_id)
