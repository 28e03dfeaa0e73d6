"""WebSocket route for realtime list updates.

One socket may subscribe to many lists. Every outbound message goes through
the socket's channel queue, so control replies and broadcast events never
race on the wire.

Heartbeat: after an idle interval the server queues a JSON ping and waits a
short grace; the socket is closed after more than the configured number of
unanswered pings.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from api.dependencies import get_list_service, get_realtime_service, get_user_service
from application.dto import UserResponseDTO
from application.ports.realtime import SocketConnectedEvent
from application.services.realtime_service import RealtimeService
from application.services.shopping_list_service import ShoppingListApplicationService
from application.services.user_service import UserApplicationService
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from infrastructure.realtime.channels import ChannelClosedError, WebSocketChannel


logger = get_logger(__name__)


router = APIRouter(tags=["WebSocket"])

POLICY_VIOLATION = 1008
GOING_AWAY = 1001


def _extract_token(ws: WebSocket) -> Optional[str]:
    # Prefer query param, fallback to header `Authorization: Bearer x`
    token = ws.query_params.get("token")
    if token:
        return token
    auth = ws.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


def _error(message: str, **extra: Any) -> dict:
    return {"type": "error", "message": message, **extra}


def _list_id(msg: dict) -> Optional[int]:
    value = msg.get("listId")
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def _authenticate(ws: WebSocket, user_service: UserApplicationService) -> Optional[UserResponseDTO]:
    token = _extract_token(ws)
    if not token:
        await ws.close(code=POLICY_VIOLATION, reason="Token required")
        return None
    try:
        user = await user_service.authenticate_token(token)
    except BusinessException:
        user = None
    if user is None:
        await ws.close(code=POLICY_VIOLATION, reason="Invalid token")
        return None
    return user


@router.websocket("/ws")
async def websocket_endpoint(
    ws: WebSocket,
    user_service: UserApplicationService = Depends(get_user_service),
    list_service: ShoppingListApplicationService = Depends(get_list_service),
    realtime: RealtimeService = Depends(get_realtime_service),
) -> None:
    await ws.accept()
    user = await _authenticate(ws, user_service)
    if user is None:
        return

    connections = realtime.connections
    channel = connections.connect(user.id, ws)
    connections.send(channel, SocketConnectedEvent(user_id=user.id))

    idle_ping_interval = float(settings.REALTIME_WS_IDLE_PING_INTERVAL_S or 0)
    pong_grace = float(settings.REALTIME_WS_PONG_GRACE_S)
    missed_limit = int(settings.REALTIME_WS_MISSED_PING_LIMIT)

    try:
        missed = 0
        while not channel.closed:
            if idle_ping_interval > 0:
                timeout = idle_ping_interval if missed == 0 else pong_grace
                try:
                    raw = await asyncio.wait_for(ws.receive_text(), timeout=timeout)
                except asyncio.TimeoutError:
                    missed += 1
                    if missed > missed_limit:
                        logger.info("ws_heartbeat_timeout", user_id=user.id, missed=missed)
                        await connections.disconnect(channel)
                        await ws.close(code=GOING_AWAY)
                        break
                    connections.send(channel, {"type": "ping"})
                    continue
            else:
                raw = await ws.receive_text()
            # any inbound frame proves the peer is alive
            missed = 0

            try:
                msg = json.loads(raw)
            except ValueError:
                logger.warning("ws_malformed_message", user_id=user.id, size=len(raw))
                continue
            if not isinstance(msg, dict):
                logger.warning("ws_malformed_message", user_id=user.id, size=len(raw))
                continue

            await _handle_message(msg, channel, user, list_service, realtime)
    except WebSocketDisconnect:
        pass
    except ChannelClosedError:
        logger.info("ws_channel_closed", user_id=user.id, channel_id=channel.id)
    except Exception as exc:
        logger.error("ws_error", user_id=user.id, error=str(exc), exc_info=True)
    finally:
        await connections.disconnect(channel)


async def _handle_message(
    msg: dict,
    channel: WebSocketChannel,
    user: UserResponseDTO,
    list_service: ShoppingListApplicationService,
    realtime: RealtimeService,
) -> None:
    connections = realtime.connections
    mtype = str(msg.get("type") or "").lower()

    if mtype == "subscribe":
        list_id = _list_id(msg)
        if list_id is None:
            connections.send(channel, _error("listId is required"))
            return
        try:
            await list_service.authorize_view(list_id, user.id)
        except BusinessException as exc:
            logger.info("ws_subscribe_denied", user_id=user.id, list_id=list_id, code=exc.code)
            connections.send(channel, _error(exc.message, code=exc.code, listId=list_id))
            return
        connections.subscribe(channel, list_id)
    elif mtype == "unsubscribe":
        list_id = _list_id(msg)
        if list_id is not None:
            connections.unsubscribe(channel, list_id)
    elif mtype == "ping":
        connections.send(channel, {"type": "pong"})
    elif mtype == "pong":
        # Client heartbeat reply; nothing else to do.
        return
    else:
        connections.send(channel, _error("Unknown message type", received=mtype or None))
