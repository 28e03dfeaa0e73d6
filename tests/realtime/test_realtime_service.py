import json

import pytest

from application.ports.realtime import BrokerMessage, ItemCreatedEvent
from application.services.realtime_service import RealtimeService
from infrastructure.realtime.broadcaster import EventBroadcaster
from infrastructure.realtime.brokers import InMemoryRealtimeBroker
from infrastructure.realtime.connection_manager import ConnectionManager
from infrastructure.realtime.registry import SubscriptionRegistry


class CapturingChannel:
    def __init__(self, name: str):
        self.id = name
        self.closed = False
        self.frames = []

    def write(self, payload: str) -> None:
        self.frames.append(payload)

    def close(self) -> None:
        self.closed = True


class FailingBroker(InMemoryRealtimeBroker):
    async def publish(self, message: BrokerMessage) -> None:
        raise ConnectionError("broker down")


def _service(broker=None) -> RealtimeService:
    registry = SubscriptionRegistry()
    return RealtimeService(
        broker=broker or InMemoryRealtimeBroker(),
        broadcaster=EventBroadcaster(registry),
        connections=ConnectionManager(registry),
    )


@pytest.mark.asyncio
async def test_publish_reaches_local_channels_through_broker():
    service = _service()
    await service.start()
    ch = CapturingChannel("a")
    service.registry.register(11, ch)

    await service.publish(11, ItemCreatedEvent(item={"id": 1, "name": "Eggs"}))

    assert [json.loads(f) for f in ch.frames] == [{"type": "item_created", "item": {"id": 1, "name": "Eggs"}}]
    await service.aclose()


@pytest.mark.asyncio
async def test_publish_failure_is_contained():
    service = _service(FailingBroker())
    await service.start()
    # must not raise: the triggering mutation is already committed
    await service.publish(1, {"type": "item_deleted", "itemId": 1, "itemName": "x"})


@pytest.mark.asyncio
async def test_broker_event_without_subscribers_is_dropped():
    service = _service()
    await service.on_broker_event(BrokerMessage(list_id=99, message={"type": "item_created", "item": {}}))
    assert len(service.registry) == 0
