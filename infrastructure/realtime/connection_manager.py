"""In-process WebSocket connection manager.

Keeps track of each user's open sockets (one per tab) and their list
subscriptions. Subscriptions live in the shared SubscriptionRegistry so
socket and SSE channels receive the same fan-out. Cross-process delivery
is handled by a RealtimeBrokerPort implementation.
"""
from __future__ import annotations

import threading
from typing import Any, Dict, List, Mapping, Set, Union

from fastapi import WebSocket

from application.ports.realtime import RealtimeEvent
from core.logging_config import get_logger
from infrastructure.realtime.broadcaster import serialize_message
from infrastructure.realtime.channels import ChannelClosedError, WebSocketChannel
from infrastructure.realtime.registry import SubscriptionRegistry


logger = get_logger(__name__)


class ConnectionManager:
    """Manage per-process WebSocket channels keyed by user id."""

    def __init__(self, registry: SubscriptionRegistry) -> None:
        self._registry = registry
        # user_id -> set[WebSocketChannel]
        self._by_user: Dict[int, Set[WebSocketChannel]] = {}
        self._lock = threading.Lock()

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    def connect(self, user_id: int, ws: WebSocket) -> WebSocketChannel:
        """Wrap an accepted socket in a channel and start its sender task."""
        channel = WebSocketChannel(ws, user_id=user_id, on_close=self._registry.unregister_all)
        with self._lock:
            self._by_user.setdefault(user_id, set()).add(channel)
        channel.start()
        logger.info("ws_connected", user_id=user_id, channel_id=channel.id)
        return channel

    async def disconnect(self, channel: WebSocketChannel) -> None:
        """Drop every subscription of ``channel`` and forget it. Idempotent."""
        left = self._registry.unregister_all(channel)
        user_id = channel.user_id
        with self._lock:
            conns = self._by_user.get(user_id)
            if conns is not None:
                conns.discard(channel)
                if not conns:
                    del self._by_user[user_id]
        await channel.aclose()
        logger.info("ws_disconnected", user_id=user_id, channel_id=channel.id, lists_left=len(left))

    def subscribe(self, channel: WebSocketChannel, list_id: int) -> None:
        if self._registry.register(list_id, channel):
            logger.info("ws_subscribed", user_id=channel.user_id, list_id=list_id)

    def unsubscribe(self, channel: WebSocketChannel, list_id: int) -> None:
        if self._registry.unregister(list_id, channel):
            logger.info("ws_unsubscribed", user_id=channel.user_id, list_id=list_id)

    def send(self, channel: WebSocketChannel, message: Union[RealtimeEvent, Mapping[str, Any]]) -> bool:
        """Queue a direct (non list-scoped) message on one channel."""
        try:
            channel.write(serialize_message(message))
            return True
        except ChannelClosedError:
            return False

    def channels_for_user(self, user_id: int) -> List[WebSocketChannel]:
        with self._lock:
            return list(self._by_user.get(user_id, ()))

    def user_ids(self) -> List[int]:
        with self._lock:
            return list(self._by_user)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(conns) for conns in self._by_user.values())
