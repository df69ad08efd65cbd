"""Server-sent keep-alive stream for the SSE transport.

The stream sends an `initialized` notification right away and then a
ping every interval. The ping timer is a task owned by the stream and is
cancelled when the client disconnects or the generator is closed.
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)

INITIALIZED_NOTIFICATION = {
    "jsonrpc": "2.0",
    "method": "notifications/initialized",
    "params": {},
}
PING = {"type": "ping"}


def format_event(payload: dict) -> str:
    return f"data: {json.dumps(payload, separators=(',', ':'))}\n\n"


class KeepAliveStream:
    """Iterable of SSE frames bound to one connection.

    Args:
        interval: Seconds between pings
    """

    def __init__(self, interval: float = 30.0):
        if interval <= 0:
            raise ValueError(f"Invalid keep-alive interval: {interval}")
        self.interval = interval
        self.ticker: Optional[asyncio.Task] = None
        self._queue: asyncio.Queue = asyncio.Queue()

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self._queue.put(PING)

    def cancel(self) -> None:
        if self.ticker is not None and not self.ticker.done():
            self.ticker.cancel()

    async def events(self) -> AsyncIterator[str]:
        self.ticker = asyncio.create_task(self._tick())
        logger.info("SSE client connected")
        try:
            yield format_event(INITIALIZED_NOTIFICATION)
            while True:
                payload = await self._queue.get()
                yield format_event(payload)
        finally:
            self.cancel()
            logger.info("SSE client disconnected")

    def __aiter__(self) -> AsyncIterator[str]:
        return self.events()
