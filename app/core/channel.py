"""Streaming output channel between the relay and a transport.

The relay writes to a ChunkSink and never sees HTTP. StreamChannel is the
sink used by the streaming route: an asyncio.Queue the route drains and
frames as server-sent events. When the consumer goes away the route closes
the channel; the relay sees ``cancelled`` and stops.

Examples:
    >>> channel = StreamChannel()
    >>> task = asyncio.create_task(relay.relay_streamed(request, owner_id, channel))
    >>> async for event in channel.events():
    ...     yield format_sse(event)

Tests:
    - tests/unit/test_relay.py
    - tests/integration/test_api_chat.py
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any, Protocol

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_END = object()


class ChunkSink(Protocol):
    """Where the relay sends its output."""

    @property
    def cancelled(self) -> bool: ...

    async def on_chunk(self, text: str) -> None: ...

    async def on_complete(self, conversation_id: str | None) -> None: ...

    async def on_error(self, error: Exception) -> None: ...


def format_sse(event: dict[str, Any]) -> str:
    """Frame one event as ``data: {json}\\n\\n``."""
    return f"data: {json.dumps(event)}\n\n"


def error_message(error: Exception) -> str:
    """Client-facing text for a relay failure."""
    return str(error) or error.__class__.__name__


class StreamChannel:
    """Queue-backed ChunkSink.

    Events are dicts shaped like the wire payloads:
    ``{"content", "done": False}``, ``{"content": "", "done": True,
    "conversationId"}`` or ``{"error"}``. After a terminal event (or
    close()) nothing more is queued.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Mark the consumer as gone."""
        self._closed = True

    def _put(self, item: Any) -> None:
        if not self._closed and not self._finished:
            self._queue.put_nowait(item)

    def _finish(self, event: dict[str, Any]) -> None:
        self._put(event)
        self._put(_END)
        self._finished = True

    async def on_chunk(self, text: str) -> None:
        self._put({"content": text, "done": False})

    async def on_complete(self, conversation_id: str | None) -> None:
        self._finish({"content": "", "done": True, "conversationId": conversation_id})

    async def on_error(self, error: Exception) -> None:
        self._finish({"error": error_message(error)})

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        """Yield queued events until a terminal one has been delivered."""
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item
