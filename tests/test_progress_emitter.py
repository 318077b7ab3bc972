import asyncio
from datetime import datetime, timezone

import pytest

from presales_research.models.events import parse_event
from presales_research.models.schemas import ReportMetadata, StructuredReport
from presales_research.services import streaming
from presales_research.services.progress import ProgressEmitter, QueueSink

from conftest import RecordingSink


def _report() -> StructuredReport:
    return StructuredReport(
        full_report="text",
        metadata=ReportMetadata(
            company="Acme",
            model_used="model",
            fallback_used=False,
            timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc).isoformat(),
        ),
    )


class TestProgressEmitter:
    @pytest.mark.asyncio
    async def test_events_arrive_in_order(self, recording_sink):
        emitter = ProgressEmitter(recording_sink)

        await emitter.emit(streaming.initializing("Acme"))
        await emitter.emit(streaming.searching("acme news", 1, 0))
        await emitter.emit(streaming.reading("https://acme.com", 1, 1))
        await emitter.emit(streaming.complete(_report()))

        assert recording_sink.types == ["progress", "progress", "progress", "complete"]
        assert recording_sink.statuses == ["initializing", "searching", "reading"]
        assert emitter.events_sent == 4

    @pytest.mark.asyncio
    async def test_terminal_event_closes_channel(self, recording_sink):
        emitter = ProgressEmitter(recording_sink)

        assert await emitter.emit(streaming.error("boom")) is True
        assert emitter.terminal_sent
        assert emitter.closed
        assert recording_sink.close_calls == 1

        assert await emitter.emit(streaming.complete(_report())) is False
        assert await emitter.emit(streaming.analyzing("late", 0, 0)) is False
        assert recording_sink.types == ["error"]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, recording_sink):
        emitter = ProgressEmitter(recording_sink)
        await emitter.close()
        await emitter.close()
        assert recording_sink.close_calls == 1

    @pytest.mark.asyncio
    async def test_emit_after_close_is_dropped(self, recording_sink):
        emitter = ProgressEmitter(recording_sink)
        await emitter.close()

        assert await emitter.emit(streaming.initializing("Acme")) is False
        assert recording_sink.events == []
        assert not emitter.terminal_sent

    @pytest.mark.asyncio
    async def test_transport_close_is_silent(self):
        sink = RecordingSink(disconnect_after=1)
        emitter = ProgressEmitter(sink)

        assert await emitter.emit(streaming.initializing("Acme")) is True
        assert await emitter.emit(streaming.searching("q", 1, 0)) is False
        assert emitter.transport_closed
        assert await emitter.emit(streaming.complete(_report())) is False
        assert len(sink.events) == 1

        await emitter.close()
        assert emitter.closed

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [ConnectionResetError("reset by peer"), RuntimeError("stream closed")])
    async def test_broken_sink_is_treated_as_disconnect(self, failure):
        class BrokenSink:
            def __init__(self):
                self.sent = 0

            async def send(self, event):
                self.sent += 1
                raise failure

            async def aclose(self):
                raise failure

        sink = BrokenSink()
        emitter = ProgressEmitter(sink)

        assert await emitter.emit(streaming.initializing("Acme")) is False
        assert emitter.transport_closed
        assert await emitter.emit(streaming.error("boom")) is False
        assert sink.sent == 1

        await emitter.close()
        assert emitter.closed

    @pytest.mark.asyncio
    async def test_concurrent_emits_are_serialized(self, recording_sink):
        emitter = ProgressEmitter(recording_sink)
        await asyncio.gather(*(emitter.emit(streaming.searching(f"q{i}", i, 0)) for i in range(10)))
        assert len(recording_sink.events) == 10
        assert emitter.events_sent == 10


class TestQueueSink:
    @pytest.mark.asyncio
    async def test_hands_events_to_consumer_in_order(self):
        sink = QueueSink()
        emitter = ProgressEmitter(sink)

        async def produce():
            await emitter.emit(streaming.initializing("Acme"))
            await emitter.emit(streaming.searching("acme", 1, 0))
            await emitter.emit(streaming.complete(_report()))

        producer = asyncio.create_task(produce())
        received = [event async for event in sink.events()]
        await producer

        assert [e.type for e in received] == ["progress", "progress", "complete"]

    @pytest.mark.asyncio
    async def test_send_after_disconnect_raises_into_emitter(self):
        sink = QueueSink()
        emitter = ProgressEmitter(sink)
        sink.disconnect()

        assert await emitter.emit(streaming.initializing("Acme")) is False
        assert emitter.transport_closed

    @pytest.mark.asyncio
    async def test_disconnect_releases_waiting_producer(self):
        sink = QueueSink()
        emitter = ProgressEmitter(sink)

        producer = asyncio.create_task(emitter.emit(streaming.initializing("Acme")))
        await asyncio.sleep(0)
        sink.disconnect()

        assert await asyncio.wait_for(producer, timeout=1) is True
        assert await emitter.emit(streaming.searching("q", 1, 0)) is False


class TestEventWireFormat:
    def test_progress_frame(self):
        frame = streaming.searching("acme funding", 2, 1, {"company": "Acme"}).to_sse()
        assert frame["event"] == "progress"
        event = parse_event(frame["data"])
        assert event.status.value == "searching"
        assert event.search_count == 2
        assert '"searchCount":2' in frame["data"]
        assert '"pagesRead":1' in frame["data"]

    def test_error_frame_round_trips(self):
        frame = streaming.error("Research failed", "primary timed out").to_sse()
        event = parse_event(frame["data"])
        assert frame["event"] == "error"
        assert event.is_terminal
        assert event.details == "primary timed out"

    def test_complete_frame_uses_camel_case(self):
        data = streaming.complete(_report()).to_sse()["data"]
        assert '"fullReport":"text"' in data
        assert '"fallbackUsed":false' in data
        assert parse_event(data).results.metadata.company == "Acme"
