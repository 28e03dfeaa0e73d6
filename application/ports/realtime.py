"""
Realtime ports and event DTOs (contracts-first).

This module defines the list-update events pushed to subscribers, the
Channel contract implemented by each transport, and the
RealtimeBrokerPort protocol so the application layer stays decoupled
from the concrete fan-out and cross-process implementations.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Literal, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utc_now_z() -> str:
    ts = datetime.now(timezone.utc)
    s = ts.isoformat()
    return s.replace("+00:00", "Z")


class RealtimeEvent(BaseModel):
    """Base class for list-update events.

    Events are immutable and serialize with camelCase keys, e.g.
    ``{"type": "item_deleted", "itemId": 3, "itemName": "Milk"}``.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    type: str

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ConnectedEvent(RealtimeEvent):
    """First frame on a list update stream."""

    type: Literal["connected"] = "connected"
    list_id: int


class SocketConnectedEvent(RealtimeEvent):
    """First message on a socket connection."""

    type: Literal["connected"] = "connected"
    user_id: int


class ItemCreatedEvent(RealtimeEvent):
    type: Literal["item_created"] = "item_created"
    item: dict[str, Any]


class ItemUpdatedEvent(RealtimeEvent):
    type: Literal["item_updated"] = "item_updated"
    item: dict[str, Any]


class ItemDeletedEvent(RealtimeEvent):
    type: Literal["item_deleted"] = "item_deleted"
    item_id: int
    item_name: str


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    item_name: str
    category: Optional[str] = None


class ItemsAddedEvent(RealtimeEvent):
    type: Literal["items_added"] = "items_added"
    count: int
    items: list[dict[str, Any]] = Field(default_factory=list)
    category_updates: list[CategoryUpdate] = Field(default_factory=list)


class CategoryUpdatedEvent(RealtimeEvent):
    type: Literal["category_updated"] = "category_updated"
    item_name: str
    category: Optional[str] = None
    timestamp: str = Field(default_factory=_utc_now_z)


@runtime_checkable
class Channel(Protocol):
    """One open delivery path to one connected client.

    ``write`` is synchronous and never blocks; it raises
    ``ChannelClosedError`` once the channel can no longer be written to.
    """

    id: str

    @property
    def closed(self) -> bool: ...

    def write(self, payload: str) -> None: ...

    def close(self) -> None: ...


class ListEventPublisher(Protocol):
    """What ListStore mutation handlers call after committing a change."""

    async def publish(self, list_id: int, event: RealtimeEvent) -> None: ...


class BrokerMessage(BaseModel):
    """Cross-process envelope: one list-update message for one list."""

    list_id: int
    message: dict[str, Any]
    ts: str = Field(default_factory=_utc_now_z)


Handler = Callable[[BrokerMessage], Awaitable[None]]


class RealtimeBrokerPort(Protocol):
    """Abstraction for cross-process broadcast.

    Implementations may be in-memory (single process) or Redis pub/sub.
    The application only depends on this contract.
    """

    async def publish(self, message: BrokerMessage) -> None: ...

    async def subscribe(self, handler: Handler) -> None: ...

    async def aclose(self) -> None: ...  # pragma: no cover - optional


__all__ = [
    "RealtimeEvent",
    "ConnectedEvent",
    "SocketConnectedEvent",
    "ItemCreatedEvent",
    "ItemUpdatedEvent",
    "ItemDeletedEvent",
    "CategoryUpdate",
    "ItemsAddedEvent",
    "CategoryUpdatedEvent",
    "Channel",
    "ListEventPublisher",
    "BrokerMessage",
    "Handler",
    "RealtimeBrokerPort",
]
