"""
Redis 客户端 - 实时广播使用的发布/订阅封装
"""
from __future__ import annotations

import asyncio
import json
import socket
from typing import Any, AsyncGenerator, Callable, Dict, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class RedisClient:
    """
    Redis 发布/订阅客户端

    特性:
    - 自动序列化/反序列化（JSON）
    - 命名空间隔离（频道名加前缀）
    """

    def __init__(
        self,
        client: aioredis.Redis,
        namespace: str = "",
        serializer: Optional[Callable] = None,
        deserializer: Optional[Callable] = None,
    ):
        self._client = client
        self._namespace = namespace.strip(":")
        self._serializer = serializer or self._default_serializer
        self._deserializer = deserializer or self._default_deserializer

    def _format_key(self, key: str) -> str:
        """格式化频道名，添加命名空间前缀"""
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    def _strip_namespace(self, key: str) -> str:
        if self._namespace and key.startswith(f"{self._namespace}:"):
            return key[len(self._namespace) + 1:]
        return key

    def _default_serializer(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        return json.dumps(value, default=str, ensure_ascii=False)

    def _default_deserializer(self, value: Optional[str]) -> Any:
        if value is None:
            return None
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return value

    async def publish(self, channel: str, message: Any) -> int:
        """
        发布消息到频道

        Returns:
            接收消息的订阅者数量
        """
        formatted_channel = self._format_key(channel)
        try:
            return await self._client.publish(formatted_channel, self._serializer(message))
        except RedisError as e:
            logger.error("redis_publish_failed", channel=formatted_channel, error=str(e))
            return 0

    async def psubscribe(self, *patterns: str) -> AsyncGenerator[Dict[str, Any], None]:
        """
        按模式订阅频道，返回消息生成器

        Yields:
            {"channel", "data", "pattern"}，channel 已去掉命名空间前缀
        """
        formatted = [self._format_key(p) for p in patterns]
        pubsub = self._client.pubsub()
        try:
            await pubsub.psubscribe(*formatted)
            async for message in pubsub.listen():
                if message["type"] not in ("message", "pmessage"):
                    continue
                yield {
                    "channel": self._strip_namespace(message["channel"]),
                    "data": self._deserializer(message["data"]),
                    "pattern": message.get("pattern"),
                }
        finally:
            await pubsub.punsubscribe(*formatted)
            await pubsub.aclose()

    async def health_check(self) -> bool:
        try:
            return await self._client.ping()
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
            return False

    @property
    def client(self) -> aioredis.Redis:
        """获取原始Redis客户端（谨慎使用）"""
        return self._client


# ============= 全局实例管理 =============

_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisClient] = None
_lock = asyncio.Lock()


async def init_redis_client(namespace: Optional[str] = None, **kwargs) -> RedisClient:
    """初始化全局Redis客户端"""
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis客户端")

        keepalive_opts = {}
        if hasattr(socket, "TCP_KEEPIDLE") and hasattr(socket, "TCP_KEEPINTVL") and hasattr(socket, "TCP_KEEPCNT"):
            keepalive_opts = {
                socket.TCP_KEEPIDLE: 1,
                socket.TCP_KEEPINTVL: 1,
                socket.TCP_KEEPCNT: 3,
            }

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
            socket_keepalive=True,
            socket_keepalive_options=keepalive_opts,
            **kwargs,
        )
        try:
            await client.ping()
        except Exception as e:
            logger.error("redis_init_failed", error=str(e))
            await client.aclose()
            raise

        _redis_client = client
        _cache_instance = RedisClient(client=client, namespace=namespace or settings.redis.namespace)
        logger.info("redis_initialized", namespace=namespace or settings.redis.namespace)
        return _cache_instance


async def get_redis_client() -> RedisClient:
    """获取全局Redis客户端实例"""
    if _cache_instance is None:
        return await init_redis_client()
    return _cache_instance


async def shutdown_redis_client() -> None:
    """关闭Redis连接"""
    global _redis_client, _cache_instance

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("redis_closed")
        except Exception as e:
            logger.error("redis_close_failed", error=str(e))
        finally:
            _redis_client = None
            _cache_instance = None


__all__ = [
    "RedisClient",
    "init_redis_client",
    "get_redis_client",
    "shutdown_redis_client",
]
