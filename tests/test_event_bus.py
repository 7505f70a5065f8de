"""Tests for the progress event bus, channel readers and sinks."""

import asyncio
import json
import logging

import httpx
import pytest

from contextflow.runtime.event_bus import (
    EventBus,
    EventSink,
    EventType,
    HttpEventSink,
    ProgressEvent,
)


def _event(event_type: EventType, channel: str = "session_1", **data) -> ProgressEvent:
    return ProgressEvent(type=event_type, channel=channel, session_id=channel, data=data)


class RecordingSink(EventSink):
    def __init__(self):
        self.events: list[ProgressEvent] = []

    async def publish(self, event: ProgressEvent) -> None:
        self.events.append(event)


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_channel_filter(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        bus.subscribe([EventType.STEP_UPDATE], handler, filter_channel="session_1")

        await bus.publish(_event(EventType.STEP_UPDATE, "session_1"))
        await bus.publish(_event(EventType.STEP_UPDATE, "session_2"))
        await bus.publish(_event(EventType.SIMULATION_STARTED, "session_1"))

        assert len(received) == 1
        assert received[0].channel == "session_1"

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        sub_id = bus.subscribe([EventType.STEP_UPDATE], handler)
        assert bus.unsubscribe(sub_id) is True
        assert bus.unsubscribe(sub_id) is False

        await bus.publish(_event(EventType.STEP_UPDATE))
        assert received == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_break_delivery(self, caplog):
        bus = EventBus()
        received = []

        async def broken(event):
            raise RuntimeError("observer bug")

        async def healthy(event):
            received.append(event)

        bus.subscribe([EventType.STEP_UPDATE], broken)
        bus.subscribe([EventType.STEP_UPDATE], healthy)

        with caplog.at_level(logging.ERROR):
            await bus.publish(_event(EventType.STEP_UPDATE))

        assert len(received) == 1
        assert "observer bug" in caplog.text

    @pytest.mark.asyncio
    async def test_wait_for(self):
        bus = EventBus()

        async def publish_later():
            await asyncio.sleep(0.01)
            await bus.publish(_event(EventType.SIMULATION_COMPLETED, "session_9"))

        task = asyncio.create_task(publish_later())
        event = await bus.wait_for(EventType.SIMULATION_COMPLETED, channel="session_9", timeout=1.0)
        await task

        assert event is not None
        assert event.channel == "session_9"

    @pytest.mark.asyncio
    async def test_wait_for_timeout(self):
        assert await EventBus().wait_for(EventType.STEP_UPDATE, timeout=0.01) is None


class TestChannelReader:
    @pytest.mark.asyncio
    async def test_reads_in_order_until_terminal(self):
        bus = EventBus()
        reader = bus.channel("session_1")

        await bus.publish(_event(EventType.SIMULATION_STARTED))
        await bus.publish(_event(EventType.STEP_UPDATE, status="running"))
        await bus.publish(_event(EventType.STEP_UPDATE, "session_2"))
        await bus.publish(_event(EventType.STEP_UPDATE, status="completed"))
        await bus.publish(_event(EventType.SIMULATION_COMPLETED))

        received = [event async for event in reader]

        assert [e.type for e in received] == [
            EventType.SIMULATION_STARTED,
            EventType.STEP_UPDATE,
            EventType.STEP_UPDATE,
            EventType.SIMULATION_COMPLETED,
        ]
        assert bus.get_stats()["readers"] == 0

    @pytest.mark.asyncio
    async def test_context_manager_closes_reader(self):
        bus = EventBus()

        async with bus.channel("c", until_terminal=False):
            assert bus.get_stats()["readers"] == 1

        assert bus.get_stats()["readers"] == 0


class TestSinks:
    @pytest.mark.asyncio
    async def test_events_forwarded_to_sinks(self):
        sink = RecordingSink()
        bus = EventBus(sinks=[sink])

        await bus.publish(_event(EventType.STEP_UPDATE))

        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_http_sink_posts_json(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sink = HttpEventSink("https://realtime.example/broadcast", client=client)
            await sink.publish(_event(EventType.STEP_UPDATE, progress=50.0))

        body = json.loads(requests[0].content)
        assert body["channel"] == "session_1"
        assert body["event"] == "step_update"
        assert body["payload"]["data"] == {"progress": 50.0}

    @pytest.mark.asyncio
    async def test_http_sink_failure_is_logged_not_raised(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            bus = EventBus(sinks=[HttpEventSink("https://realtime.example/broadcast", client=client)])
            with caplog.at_level(logging.WARNING):
                await bus.publish(_event(EventType.SIMULATION_ERROR, error="x"))

        assert "connection refused" in caplog.text

    @pytest.mark.asyncio
    async def test_http_sink_redirect_is_rejected(self, caplog):
        transport = httpx.MockTransport(lambda request: httpx.Response(307, headers={"Location": "/x"}))

        async with httpx.AsyncClient(transport=transport) as client:
            sink = HttpEventSink("https://realtime.example/broadcast", client=client)
            with caplog.at_level(logging.WARNING):
                await sink.publish(_event(EventType.STEP_UPDATE))

        assert "rejected: HTTP 307" in caplog.text


class TestHistory:
    @pytest.mark.asyncio
    async def test_history_is_bounded_and_most_recent_first(self):
        bus = EventBus(max_history=2)

        for i in range(3):
            await bus.publish(_event(EventType.STEP_UPDATE, index=i))

        history = bus.get_history()
        assert [e.data["index"] for e in history] == [2, 1]

    def test_to_dict(self):
        event = _event(EventType.COMPARISON_COMPLETED, "comparison_1")

        data = event.to_dict()

        assert data["type"] == "comparison_completed"
        assert data["channel"] == "comparison_1"
        assert event.is_terminal
