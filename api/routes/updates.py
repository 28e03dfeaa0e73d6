"""Server-Sent Events stream of list updates.

One SSE response is one channel registered for exactly one list. The body
iterator is the channel's only consumer, and its ``finally`` block is the
path that unregisters the channel when the client goes away.
"""
from __future__ import annotations

from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends
from sse_starlette import EventSourceResponse
from starlette.background import BackgroundTask

from api.dependencies import get_list_service, get_realtime_service, get_stream_user
from application.dto import UserResponseDTO
from application.ports.realtime import ConnectedEvent
from application.services.realtime_service import RealtimeService
from application.services.shopping_list_service import ShoppingListApplicationService
from core.config import settings
from core.logging_config import get_logger
from infrastructure.realtime.broadcaster import serialize_message
from infrastructure.realtime.channels import SSEChannel
from infrastructure.realtime.registry import SubscriptionRegistry


logger = get_logger(__name__)

router = APIRouter(tags=["Realtime"])


def open_list_channel(
    registry: SubscriptionRegistry,
    list_id: int,
    user_id: Optional[int] = None,
) -> SSEChannel:
    """Register a new SSE channel for ``list_id`` and queue the connected frame."""
    channel = SSEChannel(
        list_id,
        user_id=user_id,
        on_close=lambda ch: registry.unregister(list_id, ch),
    )
    registry.register(list_id, channel)
    try:
        channel.write(serialize_message(ConnectedEvent(list_id=list_id)))
    except Exception:
        channel.close()
        raise
    logger.info("sse_connected", list_id=list_id, user_id=user_id, channel_id=channel.id)
    return channel


async def stream_channel(channel: SSEChannel) -> AsyncIterator[bytes]:
    """Response body: drain the channel until it closes or the client leaves."""
    try:
        async for frame in channel.frames():
            yield frame
    finally:
        channel.close()
        logger.info("sse_disconnected", list_id=channel.list_id, user_id=channel.user_id, channel_id=channel.id)


async def _release(channel: SSEChannel) -> None:
    # covers a response cancelled before its body iterator ever started
    channel.close()


@router.get("/lists/{list_id}/updates", summary="订阅清单实时更新（SSE）")
async def list_updates(
    list_id: int,
    current_user: UserResponseDTO = Depends(get_stream_user),
    service: ShoppingListApplicationService = Depends(get_list_service),
    realtime: RealtimeService = Depends(get_realtime_service),
):
    """
    EventSource 客户端可用 ``?token=`` 传递令牌。

    第一帧为 ``{"type":"connected","listId":<id>}``，之后推送清单变更事件。
    """
    await service.authorize_view(list_id, current_user.id)
    channel = open_list_channel(realtime.registry, list_id, user_id=current_user.id)
    try:
        return EventSourceResponse(
            stream_channel(channel),
            ping=settings.REALTIME_SSE_PING_INTERVAL_S,
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
            background=BackgroundTask(_release, channel),
        )
    except Exception:
        channel.close()
        raise
