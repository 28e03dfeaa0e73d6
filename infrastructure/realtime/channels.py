"""Delivery channels for list-update events.

A channel owns one bounded send queue drained by exactly one consumer
(the SSE response body iterator, or the WebSocket sender task), so writes
to the wire are serialized per channel. ``write`` only enqueues and never
awaits, which keeps ``EventBroadcaster.broadcast`` synchronous.
"""
from __future__ import annotations

import asyncio
import uuid
from typing import AsyncIterator, Callable, Optional

from fastapi import WebSocket

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)

OVERFLOW_POLICIES = frozenset({"drop_oldest", "drop_new", "disconnect"})

# sentinel pushed on close to wake the consumer
_CLOSED = object()


class ChannelClosedError(Exception):
    """Raised when writing to a channel that can no longer deliver."""

    def __init__(self, channel_id: str) -> None:
        super().__init__(f"channel {channel_id} is closed")
        self.channel_id = channel_id


class QueuedChannel:
    """Base for channels backed by a bounded asyncio queue."""

    kind = "queued"

    def __init__(
        self,
        *,
        user_id: Optional[int] = None,
        queue_max: Optional[int] = None,
        overflow_policy: Optional[str] = None,
        on_close: Optional[Callable[["QueuedChannel"], None]] = None,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        size = queue_max if queue_max is not None else settings.REALTIME_SEND_QUEUE_MAX
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, int(size)))
        policy = (overflow_policy or settings.REALTIME_SEND_OVERFLOW_POLICY or "drop_oldest").lower()
        if policy not in OVERFLOW_POLICIES:
            logger.warning("channel_overflow_policy_invalid", policy=policy, fallback="drop_oldest")
            policy = "drop_oldest"
        self._policy = policy
        self._closed = False
        self._on_close = on_close

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} user_id={self.user_id} closed={self._closed}>"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def encode(self, payload: str):
        """Apply this channel's framing to a serialized JSON payload."""
        return payload

    def write(self, payload: str) -> None:
        if self._closed:
            raise ChannelClosedError(self.id)
        frame = self.encode(payload)
        try:
            self._queue.put_nowait(frame)
            return
        except asyncio.QueueFull:
            pass

        if self._policy == "drop_new":
            logger.warning("channel_queue_drop_new", channel_id=self.id, kind=self.kind)
            return
        if self._policy == "disconnect":
            logger.warning("channel_queue_disconnect", channel_id=self.id, kind=self.kind)
            self.close()
            raise ChannelClosedError(self.id)
        # drop_oldest
        try:
            self._queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
        self._queue.put_nowait(frame)
        logger.debug("channel_queue_drop_oldest", channel_id=self.id, kind=self.kind)

    def close(self) -> None:
        """Mark closed, wake the consumer and run the close hook. Idempotent."""
        if self._closed:
            return
        self._closed = True
        # pending frames are discarded; the consumer only needs the sentinel
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)
        callback, self._on_close = self._on_close, None
        if callback is not None:
            try:
                callback(self)
            except Exception as exc:
                logger.warning("channel_close_hook_failed", channel_id=self.id, error=str(exc))

    async def frames(self) -> AsyncIterator:
        """Yield queued frames until the channel is closed."""
        while True:
            frame = await self._queue.get()
            if frame is _CLOSED:
                return
            yield frame


class SSEChannel(QueuedChannel):
    """Channel bound 1:1 to an open ``text/event-stream`` response body.

    Frames are pre-encoded bytes ``data: <json>\\n\\n``; sse-starlette passes
    bytes through untouched.
    """

    kind = "sse"

    def __init__(self, list_id: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.list_id = list_id

    def encode(self, payload: str) -> bytes:
        return f"data: {payload}\n\n".encode("utf-8")


class WebSocketChannel(QueuedChannel):
    """Channel wrapping one accepted WebSocket; a sender task drains the queue."""

    kind = "ws"

    def __init__(self, websocket: WebSocket, **kwargs) -> None:
        super().__init__(**kwargs)
        self.websocket = websocket
        self._sender: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._sender is None:
            self._sender = asyncio.create_task(self._sender_loop(), name=f"ws-sender-{self.id}")

    async def _sender_loop(self) -> None:
        async for frame in self.frames():
            try:
                await self.websocket.send_text(frame)
            except Exception as exc:
                logger.warning("ws_send_failed", channel_id=self.id, user_id=self.user_id, error=str(exc))
                self.close()
                return

    async def aclose(self) -> None:
        """Close and wait for the sender task to finish."""
        self.close()
        task, self._sender = self._sender, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


__all__ = [
    "ChannelClosedError",
    "QueuedChannel",
    "SSEChannel",
    "WebSocketChannel",
    "OVERFLOW_POLICIES",
]
