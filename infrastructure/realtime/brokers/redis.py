"""Redis Pub/Sub based RealtimeBrokerPort implementation.

Publishes to per-list channels ``rt:list:{list_id}`` and
pattern-subscribes ``rt:list:*`` so every process fans each update out
to its own local subscribers.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from pydantic import ValidationError

from application.ports.realtime import BrokerMessage, Handler, RealtimeBrokerPort
from core.logging_config import get_logger
from infrastructure.external.cache import RedisClient, get_redis_client


logger = get_logger(__name__)

CHANNEL_PATTERN = "rt:list:*"


class RedisRealtimeBroker(RealtimeBrokerPort):
    def __init__(self, client: Optional[RedisClient] = None) -> None:
        self._task: Optional[asyncio.Task] = None
        self._handler: Optional[Handler] = None
        self._client: Optional[RedisClient] = client

    @staticmethod
    def _list_channel(list_id: int) -> str:
        return f"rt:list:{list_id}"

    async def _get_client(self) -> RedisClient:
        if self._client is None:
            self._client = await get_redis_client()
        return self._client

    async def publish(self, message: BrokerMessage) -> None:  # type: ignore[override]
        client = await self._get_client()
        channel = self._list_channel(message.list_id)
        receivers = await client.publish(channel, message.model_dump(mode="json"))
        logger.debug("redis_list_event_published", channel=channel, receivers=receivers)

    async def _listen(self) -> None:
        assert self._client is not None and self._handler is not None
        try:
            logger.info("redis_pubsub_subscribed", pattern=CHANNEL_PATTERN)
            async for raw in self._client.psubscribe(CHANNEL_PATTERN):
                data = raw.get("data")
                if not isinstance(data, dict):
                    continue
                try:
                    message = BrokerMessage.model_validate(data)
                except ValidationError as exc:
                    logger.warning("redis_pubsub_parse_failed", channel=raw.get("channel"), error=str(exc))
                    continue
                try:
                    await self._handler(message)
                except Exception as exc:
                    logger.warning("redis_pubsub_handler_failed", list_id=message.list_id, error=str(exc))
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pragma: no cover
            logger.error("redis_pubsub_listen_failed", error=str(exc))

    async def subscribe(self, handler: Handler) -> None:  # type: ignore[override]
        self._handler = handler
        await self._get_client()
        self._task = asyncio.create_task(self._listen(), name="redis-realtime-listener")

    async def aclose(self) -> None:  # type: ignore[override]
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._handler = None
