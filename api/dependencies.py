"""
API依赖项 - 认证、应用服务装配与实时组件获取
"""
from typing import Optional

from fastapi import Depends, Query
from starlette.requests import HTTPConnection
from fastapi.security import OAuth2PasswordBearer, HTTPBearer, HTTPAuthorizationCredentials

from application.dto import UserResponseDTO
from application.services.list_item_service import ListItemApplicationService
from application.services.realtime_service import RealtimeService
from application.services.recipe_service import RecipeApplicationService
from application.services.shopping_list_service import ShoppingListApplicationService
from application.services.user_service import UserApplicationService
from core.exceptions import UnauthorizedException
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# OAuth2 password bearer for Swagger UI
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/v1/users/login",
    scheme_name="OAuth2",
    description="Login with username and password to get token",
    auto_error=False,
)

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


def _bearer_or_oauth2(
    oauth2_token: Optional[str],
    bearer_token: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    # 优先使用OAuth2 token (from Swagger UI)
    if oauth2_token:
        return oauth2_token
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    return None


async def get_token(
    oauth2_token: Optional[str] = Depends(oauth2_scheme),
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)
) -> str:
    """从OAuth2或Bearer token中提取token"""
    token = _bearer_or_oauth2(oauth2_token, bearer_token)
    if not token:
        raise UnauthorizedException("Authentication credentials were not provided")
    return token


async def get_stream_token(
    oauth2_token: Optional[str] = Depends(oauth2_scheme),
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    token: Optional[str] = Query(None, description="EventSource 无法设置请求头时可用查询参数传递令牌"),
) -> str:
    """订阅流的令牌：请求头优先，其次 ?token="""
    value = _bearer_or_oauth2(oauth2_token, bearer_token) or token
    if not value:
        raise UnauthorizedException("Authentication credentials were not provided")
    return value


def get_user_service() -> UserApplicationService:
    return UserApplicationService(uow_factory=SQLAlchemyUnitOfWork)


async def _resolve_user(token: str, service: UserApplicationService) -> UserResponseDTO:
    user = await service.authenticate_token(token)
    if user is None:
        raise UnauthorizedException("Invalid authentication credentials")
    return user


async def get_current_user(
    token: str = Depends(get_token),
    service: UserApplicationService = Depends(get_user_service)
) -> UserResponseDTO:
    """获取当前登录用户（无效令牌 401，停用用户 403）"""
    return await _resolve_user(token, service)


async def get_stream_user(
    token: str = Depends(get_stream_token),
    service: UserApplicationService = Depends(get_user_service)
) -> UserResponseDTO:
    return await _resolve_user(token, service)


def get_realtime_service(conn: HTTPConnection) -> RealtimeService:
    """HTTP 与 WebSocket 路由共用"""
    svc = getattr(conn.app.state, "realtime_service", None)
    if svc is None:
        raise RuntimeError("Realtime service not initialized. Ensure lifespan sets app.state.realtime_service.")
    return svc


def get_list_service(realtime: RealtimeService = Depends(get_realtime_service)) -> ShoppingListApplicationService:
    return ShoppingListApplicationService(uow_factory=SQLAlchemyUnitOfWork, publisher=realtime)


def get_item_service(realtime: RealtimeService = Depends(get_realtime_service)) -> ListItemApplicationService:
    return ListItemApplicationService(uow_factory=SQLAlchemyUnitOfWork, publisher=realtime)


def get_recipe_service(realtime: RealtimeService = Depends(get_realtime_service)) -> RecipeApplicationService:
    return RecipeApplicationService(uow_factory=SQLAlchemyUnitOfWork, publisher=realtime)
