from __future__ import annotations

import asyncio
from typing import AsyncIterator, Protocol, Union

from presales_research.models.events import ProgressUpdate, ResearchComplete, ResearchFailed
from presales_research.research.errors import TransportClosedError
from presales_research.services.logger import logger

Event = Union[ProgressUpdate, ResearchComplete, ResearchFailed]


class EventSink(Protocol):
    """Transport behind a ProgressEmitter.

    ``send`` returns once the event has been handed over; it raises
    TransportClosedError when the consumer is gone.
    """

    async def send(self, event: Event) -> None: ...

    async def aclose(self) -> None: ...


_END = object()


class QueueSink:
    """asyncio.Queue hand-off between a pipeline task and a streaming response.

    ``send`` waits until the consumer has taken the event and asked for the
    next one, so events reach the caller one at a time and in order.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._disconnected = False

    async def send(self, event: Event) -> None:
        if self._disconnected:
            raise TransportClosedError("consumer disconnected")
        await self._queue.put(event)
        await self._queue.join()

    async def aclose(self) -> None:
        self._queue.put_nowait(_END)

    def disconnect(self) -> None:
        """Called by the consumer side when it stops reading."""
        self._disconnected = True
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    async def events(self) -> AsyncIterator[Event]:
        while True:
            item = await self._queue.get()
            try:
                if item is _END:
                    return
                yield item
            finally:
                self._queue.task_done()


class ProgressEmitter:
    """Single-writer, ordered event channel with at most one terminal event."""

    def __init__(self, sink: EventSink):
        self._sink = sink
        self._lock = asyncio.Lock()
        self._closed = False
        self._terminal_sent = False
        self._transport_closed = False
        self.events_sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def terminal_sent(self) -> bool:
        return self._terminal_sent

    @property
    def transport_closed(self) -> bool:
        return self._transport_closed

    async def emit(self, event: Event) -> bool:
        """Write one event; returns False when it was dropped."""
        async with self._lock:
            if self._closed or self._transport_closed:
                logger.debug(f"Dropping {event.type} event: channel closed")
                return False
            try:
                await self._sink.send(event)
            except (TransportClosedError, OSError, RuntimeError) as exc:
                # Any sink failure ends delivery for the rest of the run.
                self._transport_closed = True
                logger.info(f"Caller disconnected; {event.type} event not delivered ({type(exc).__name__})")
                return False
            self.events_sent += 1
            if event.is_terminal:
                self._terminal_sent = True
                await self._close_locked()
            return True

    async def close(self) -> None:
        async with self._lock:
            await self._close_locked()

    async def _close_locked(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._sink.aclose()
        except (TransportClosedError, OSError, RuntimeError):
            self._transport_closed = True
