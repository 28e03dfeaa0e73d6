"""Reconnecting subscriber for list update streams.

One connection task runs per list id, shared by every callback subscribed
to that list. A dropped stream is retried with exponential backoff
(``base_delay * 2 ** attempts``) up to ``max_reconnect_attempts``; any
successfully decoded message resets the attempt counter. Removing the last
callback cancels the connection task together with a pending backoff sleep.
"""
from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .config import ClientSettings
from .api_client import TokenProvider

logger = logging.getLogger(__name__)

Callback = Callable[[Dict[str, Any]], None]
Sleep = Callable[[float], Awaitable[None]]


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


class SSEFrameDecoder:
    """Incremental decoder for ``data: <json>`` records.

    Text is buffered until a newline arrives, so a record split across
    chunks is decoded once complete. Comment lines (``:``), blank record
    separators and non-data fields are ignored.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> List[Any]:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        messages = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith("data:"):
                continue
            data = line[5:]
            if data.startswith(" "):
                data = data[1:]
            try:
                messages.append(json.loads(data))
            except ValueError:
                logger.warning("sse_malformed_frame: %.200s", data)
        return messages

    @property
    def pending(self) -> str:
        return self._buffer


class _Subscription:
    __slots__ = ("callback",)

    def __init__(self, callback: Callback) -> None:
        self.callback = callback


class _Session:
    def __init__(self, list_id: int) -> None:
        self.list_id = list_id
        self.subscriptions: List[_Subscription] = []
        self.task: Optional[asyncio.Task] = None
        self.attempts = 0
        self.state = ConnectionState.IDLE


class _AuthRejected(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"subscription rejected with status {status_code}")
        self.status_code = status_code


class ReconnectingClient:
    """Subscribe callbacks to ``GET /lists/{id}/updates`` streams."""

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        token_provider: Optional[TokenProvider] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings or ClientSettings()
        self.base_url = self.settings.base_url.rstrip("/") + self.settings.api_prefix
        self.max_reconnect_attempts = self.settings.max_reconnect_attempts
        self.base_delay = self.settings.reconnect_base_delay
        self.retry_auth_failures = self.settings.retry_auth_failures
        self._token_provider = token_provider or (lambda: self.settings.token)
        self._sleep = sleep
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            # the stream stays open between events; server pings keep it alive
            timeout=httpx.Timeout(self.settings.timeout, read=None),
            transport=transport,
        )
        self._sessions: Dict[int, _Session] = {}

    # -------------------- observer registry --------------------

    def subscribe(self, list_id: int, callback: Callback) -> Callable[[], None]:
        """Register ``callback`` for ``list_id`` and return its disposer."""
        loop = asyncio.get_running_loop()
        session = self._sessions.get(list_id)
        if session is None:
            session = self._sessions[list_id] = _Session(list_id)
        subscription = _Subscription(callback)
        session.subscriptions.append(subscription)
        if session.task is None or session.task.done():
            self._start(session, loop)

        def unsubscribe() -> None:
            self._remove(session, subscription)

        return unsubscribe

    def _start(self, session: _Session, loop: asyncio.AbstractEventLoop) -> None:
        if session.task is not None and not session.task.done():
            session.task.cancel()
        session.attempts = 0
        session.task = loop.create_task(self._run(session), name=f"list-updates-{session.list_id}")

    def _remove(self, session: _Session, subscription: _Subscription) -> None:
        try:
            session.subscriptions.remove(subscription)
        except ValueError:
            return
        if session.subscriptions:
            return
        if session.task is not None and not session.task.done():
            session.task.cancel()
        session.attempts = 0
        session.state = ConnectionState.DISCONNECTED
        if self._sessions.get(session.list_id) is session:
            del self._sessions[session.list_id]
        logger.info("list_updates_unsubscribed list_id=%s", session.list_id)

    # -------------------- inspection --------------------

    def state(self, list_id: int) -> ConnectionState:
        session = self._sessions.get(list_id)
        return session.state if session else ConnectionState.DISCONNECTED

    def attempts(self, list_id: int) -> int:
        session = self._sessions.get(list_id)
        return session.attempts if session else 0

    def connection_task(self, list_id: int) -> Optional[asyncio.Task]:
        session = self._sessions.get(list_id)
        return session.task if session else None

    def callback_count(self, list_id: int) -> int:
        session = self._sessions.get(list_id)
        return len(session.subscriptions) if session else 0

    # -------------------- connection loop --------------------

    async def _run(self, session: _Session) -> None:
        list_id = session.list_id
        try:
            while session.subscriptions:
                session.state = ConnectionState.CONNECTING
                try:
                    await self._stream_once(session)
                    session.state = ConnectionState.CLOSED
                    logger.info("list_updates_stream_ended list_id=%s", list_id)
                except _AuthRejected as exc:
                    if not self.retry_auth_failures:
                        session.state = ConnectionState.DISCONNECTED
                        logger.error("list_updates_auth_rejected list_id=%s status=%s", list_id, exc.status_code)
                        return
                    logger.warning("list_updates_auth_rejected list_id=%s status=%s, retrying", list_id, exc.status_code)
                except (httpx.HTTPError, OSError) as exc:
                    logger.warning("list_updates_transport_error list_id=%s error=%s", list_id, exc)
                except Exception:
                    logger.exception("list_updates_connect_failed list_id=%s", list_id)

                if not session.subscriptions:
                    break
                if session.attempts >= self.max_reconnect_attempts:
                    session.state = ConnectionState.DISCONNECTED
                    logger.error(
                        "list_updates_reconnect_exhausted list_id=%s attempts=%s", list_id, session.attempts
                    )
                    return
                delay = self.base_delay * (2 ** session.attempts)
                session.attempts += 1
                session.state = ConnectionState.RECONNECTING
                logger.info(
                    "list_updates_reconnecting list_id=%s attempt=%s delay=%.2f", list_id, session.attempts, delay
                )
                await self._sleep(delay)
        except asyncio.CancelledError:
            session.state = ConnectionState.DISCONNECTED
            raise

    async def _stream_once(self, session: _Session) -> None:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        url = f"{self.base_url}/lists/{session.list_id}/updates"

        async with self._client.stream("GET", url, headers=headers) as response:
            if response.status_code in (401, 403):
                raise _AuthRejected(response.status_code)
            if not response.is_success:
                logger.warning(
                    "list_updates_bad_status list_id=%s status=%s", session.list_id, response.status_code
                )
                return
            session.state = ConnectionState.STREAMING
            decoder = SSEFrameDecoder()
            async for chunk in response.aiter_text():
                for message in decoder.feed(chunk):
                    session.attempts = 0
                    self._dispatch(session, message)

    def _dispatch(self, session: _Session, message: Any) -> None:
        for subscription in list(session.subscriptions):
            try:
                subscription.callback(message)
            except Exception:
                logger.exception("list_updates_callback_failed list_id=%s", session.list_id)

    # -------------------- lifecycle --------------------

    async def aclose(self) -> None:
        """Cancel every session and close the owned HTTP client."""
        tasks = []
        for session in list(self._sessions.values()):
            session.subscriptions.clear()
            if session.task is not None and not session.task.done():
                session.task.cancel()
                tasks.append(session.task)
            session.state = ConnectionState.DISCONNECTED
        self._sessions.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ReconnectingClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
