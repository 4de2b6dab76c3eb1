"""
Bounded push channel carrying NDJSON progress lines from the pipeline to a
consumer.

The producer never blocks for longer than the send timeout. A consumer that
stalls past it (or disconnects) is marked detached and further progress lines
are dropped. Terminal lines and the close sentinel are always delivered,
evicting the oldest queued line when the queue is full.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from ..core.config import StreamConfig
from ..core.logging import get_logger
from ..models.events import EventType, StreamChunk

logger = get_logger(__name__)


class EventChannel:
    """Single-producer, single-consumer NDJSON line channel."""

    def __init__(self, config: StreamConfig | None = None) -> None:
        config = config or StreamConfig()
        self.send_timeout = config.send_timeout_seconds
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=config.queue_size)
        self.detached = False
        self.closed = False
        self.dropped = 0

    async def send(self, chunk: StreamChunk) -> bool:
        """Push one chunk. Returns False when the line was dropped."""
        if self.closed:
            logger.debug("Send after close ignored", chunk_type=chunk.type)
            return False
        line = chunk.to_line()
        if chunk.is_terminal:
            self._force_put(line)
            return True
        if self.detached:
            self.dropped += 1
            return False
        try:
            await asyncio.wait_for(self._queue.put(line), self.send_timeout)
        except asyncio.TimeoutError:
            self.detach()
            self.dropped += 1
            return False
        return True

    async def emit(self, event_type: EventType, message: str, progress: int) -> bool:
        return await self.send(StreamChunk.for_event(event_type, message, progress))

    def detach(self) -> None:
        """Stop delivering progress lines; the pipeline keeps running."""
        if not self.detached:
            logger.warning("Stream consumer detached, dropping progress events")
            self.detached = True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._force_put(None)
        if self.dropped:
            logger.info("Stream closed", dropped_lines=self.dropped)

    def _force_put(self, item: str | None) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self.dropped += 1

    async def stream(self) -> AsyncIterator[str]:
        """Yield lines until the channel is closed."""
        while True:
            line = await self._queue.get()
            if line is None:
                return
            yield line
