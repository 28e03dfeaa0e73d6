"""
内部广播接口 - 供其它进程或后台任务向清单订阅者推送事件
"""
import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from api.dependencies import get_realtime_service
from application.dto import InternalBroadcastDTO
from application.services.realtime_service import RealtimeService
from core.config import settings
from core.exceptions import UnauthorizedException
from core.logging_config import get_logger
from core.response import success_response

logger = get_logger(__name__)

router = APIRouter(prefix="/internal", tags=["Internal"])


@router.post("/broadcast", summary="内部广播", include_in_schema=False)
async def internal_broadcast(
    data: InternalBroadcastDTO,
    x_internal_token: Optional[str] = Header(None, alias="X-Internal-Token"),
    realtime: RealtimeService = Depends(get_realtime_service),
):
    """
    请求体 ``{"listId": N, "message": {"type": ...}}``

    未配置 REALTIME_INTERNAL_TOKEN 时接口关闭（404）
    """
    expected = settings.REALTIME_INTERNAL_TOKEN
    if not expected:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    if not x_internal_token or not hmac.compare_digest(x_internal_token, expected):
        logger.warning("internal_broadcast_rejected", list_id=data.list_id)
        raise UnauthorizedException("Invalid internal token")

    await realtime.publish(data.list_id, data.message)
    logger.info("internal_broadcast", list_id=data.list_id, event_type=data.message.get("type"))
    return success_response(data={"listId": data.list_id, "type": data.message["type"]})
