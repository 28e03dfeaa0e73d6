"""Fan one list-update event out to every channel registered for the list."""
from __future__ import annotations

import json
from typing import Any, Mapping, Union

from application.ports.realtime import RealtimeEvent
from core.logging_config import get_logger
from infrastructure.realtime.registry import SubscriptionRegistry


logger = get_logger(__name__)


def serialize_message(event: Union[RealtimeEvent, Mapping[str, Any]]) -> str:
    if isinstance(event, RealtimeEvent):
        message = event.to_message()
    else:
        message = dict(event)
    return json.dumps(message, ensure_ascii=False, separators=(",", ":"), default=str)


class EventBroadcaster:
    def __init__(self, registry: SubscriptionRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    def broadcast(self, list_id: int, event: Union[RealtimeEvent, Mapping[str, Any]]) -> int:
        """Deliver ``event`` to the current channels of ``list_id``.

        Serializes once and writes to a snapshot of the registered channels.
        A failing channel is closed and pruned; the failure is logged and
        never raised. Returns the number of channels written to.
        """
        channels = self._registry.channels_for(list_id)
        if not channels:
            return 0

        payload = serialize_message(event)
        delivered = 0
        for channel in channels:
            try:
                channel.write(payload)
                delivered += 1
            except Exception as exc:
                logger.info(
                    "channel_pruned",
                    list_id=list_id,
                    channel_id=getattr(channel, "id", None),
                    error=str(exc) or type(exc).__name__,
                )
                self._prune(channel)
        logger.debug(
            "list_event_broadcast",
            list_id=list_id,
            event_type=_event_type(event),
            delivered=delivered,
            targets=len(channels),
        )
        return delivered

    def broadcast_raw(self, list_id: int, message: Mapping[str, Any]) -> int:
        """Broadcast an already-shaped message dict (must carry ``type``)."""
        if "type" not in message:
            raise ValueError("message must include a 'type' field")
        return self.broadcast(list_id, message)

    def _prune(self, channel) -> None:
        self._registry.unregister_all(channel)
        try:
            channel.close()
        except Exception as exc:  # pragma: no cover
            logger.warning("channel_close_failed", channel_id=getattr(channel, "id", None), error=str(exc))


def _event_type(event: Union[RealtimeEvent, Mapping[str, Any]]) -> Any:
    if isinstance(event, RealtimeEvent):
        return event.type
    return event.get("type")
