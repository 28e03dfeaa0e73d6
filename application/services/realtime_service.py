"""Application service for realtime list updates.

Keeps application logic (publishing, orchestration) separate from the
concrete fan-out (registry/broadcaster) and the cross-process transport
(broker).
"""
from __future__ import annotations

from typing import Any, Mapping, Union

from application.ports.realtime import BrokerMessage, RealtimeBrokerPort, RealtimeEvent
from core.logging_config import get_logger
from infrastructure.realtime.broadcaster import EventBroadcaster
from infrastructure.realtime.connection_manager import ConnectionManager
from infrastructure.realtime.registry import SubscriptionRegistry


logger = get_logger(__name__)


class RealtimeService:
    """Publish list events through the broker; deliver broker events locally."""

    def __init__(
        self,
        *,
        broker: RealtimeBrokerPort,
        broadcaster: EventBroadcaster,
        connections: ConnectionManager,
    ) -> None:
        self._broker = broker
        self._broadcaster = broadcaster
        self._conn = connections

    async def start(self) -> None:
        await self._broker.subscribe(self.on_broker_event)

    async def aclose(self) -> None:
        await self._broker.aclose()

    async def publish(self, list_id: int, event: Union[RealtimeEvent, Mapping[str, Any]]) -> None:
        """Hand a committed list change to every process (best effort)."""
        message = event.to_message() if isinstance(event, RealtimeEvent) else dict(event)
        try:
            await self._broker.publish(BrokerMessage(list_id=list_id, message=message))
        except Exception as exc:
            # the mutation is already committed; subscribers reconcile on refetch
            logger.warning("realtime_publish_failed", list_id=list_id, event_type=message.get("type"), error=str(exc))

    # Broker callback (cross-process events -> in-process fan-out)
    async def on_broker_event(self, message: BrokerMessage) -> None:
        delivered = self._broadcaster.broadcast_raw(message.list_id, message.message)
        logger.debug(
            "realtime_event_dispatched",
            list_id=message.list_id,
            event_type=message.message.get("type"),
            delivered=delivered,
        )

    # Expose for API convenience
    @property
    def broadcaster(self) -> EventBroadcaster:
        return self._broadcaster

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._broadcaster.registry

    @property
    def connections(self) -> ConnectionManager:
        return self._conn
