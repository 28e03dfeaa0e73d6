"""
用户应用服务（application/services）- 编排领域服务和处理应用逻辑
"""
from typing import Callable, Optional

from domain.user.entity import User
from domain.user.service import UserDomainService
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.exceptions import (
    PasswordErrorException,
    UserInactiveException,
    UserNotFoundException,
)
from application.dto import UserCreateDTO, UserResponseDTO, LoginDTO, TokenDTO
from application.services.token_service import TokenService
from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class UserApplicationService:
    """用户应用服务 - 处理应用层逻辑"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        token_service: Optional[TokenService] = None,
    ):
        self._uow_factory = uow_factory
        self._token_service = token_service or TokenService()

    async def register_user(self, user_data: UserCreateDTO) -> UserResponseDTO:
        """注册新用户"""
        async with self._uow_factory() as uow:
            domain_service = UserDomainService(uow.user_repository)
            user = await domain_service.register_user(
                username=user_data.username,
                email=user_data.email,
                password=user_data.password,
            )
        logger.info("user_registered", user_id=user.id)
        return self._to_response_dto(user)

    async def login(self, login_data: LoginDTO) -> TokenDTO:
        """用户登录（支持用户名或邮箱）"""
        async with self._uow_factory() as uow:
            domain_service = UserDomainService(uow.user_repository)
            user = await domain_service.authenticate_user(
                username=login_data.username,
                password=login_data.password,
            )
            if user is None:
                raise PasswordErrorException()

        logger.info("user_logged_in", user_id=user.id)
        return TokenDTO(
            access_token=self._token_service.create_access_token(user),
            token_type="bearer",
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )

    async def get_user(self, user_id: int) -> UserResponseDTO:
        """获取用户信息"""
        async with self._uow_factory(readonly=True) as uow:
            user = await uow.user_repository.get_by_id(user_id)
            if not user:
                raise UserNotFoundException(str(user_id))
            return self._to_response_dto(user)

    async def verify_token(self, token: str) -> Optional[int]:
        """验证访问令牌，返回用户ID（过期抛出 TokenExpiredException）"""
        return await self._token_service.verify_access_token(token)

    async def authenticate_token(self, token: str) -> Optional[UserResponseDTO]:
        """令牌 -> 当前用户；无效令牌或用户不存在返回 None，停用用户抛出异常"""
        user_id = await self.verify_token(token)
        if user_id is None:
            return None
        try:
            user = await self.get_user(user_id)
        except UserNotFoundException:
            return None
        if not user.is_active:
            raise UserInactiveException()
        return user

    def _to_response_dto(self, user: User) -> UserResponseDTO:
        return UserResponseDTO(
            id=user.id,
            username=user.username,
            email=user.email,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
            last_login=user.last_login,
        )
