"""
用户仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from domain.user.entity import User
from domain.user.repository import UserRepository
from infrastructure.models.user import UserModel
from core.logging_config import get_logger
from domain.common.exceptions import (
    UsernameAlreadyExistsException,
    UserAlreadyExistsException,
    UserNotFoundException,
)


logger = get_logger(__name__)


class SQLAlchemyUserRepository(UserRepository):
    """用户仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserModel) -> User:
        """将数据库模型转换为领域实体"""
        return User(
            id=model.id,
            username=model.username,
            email=model.email,
            hashed_password=model.hashed_password,
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
            last_login=model.last_login,
        )

    def _to_model(self, entity: User) -> UserModel:
        """将领域实体转换为数据库模型"""
        return UserModel(
            id=entity.id,
            username=entity.username,
            email=entity.email,
            hashed_password=entity.hashed_password,
            is_active=entity.is_active,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            last_login=entity.last_login,
        )

    def _raise_conflict(self, exc: IntegrityError, user: User, event: str) -> None:
        msg = str(exc).lower()
        if "username" in msg:
            logger.warning(event, field="username", username=user.username)
            raise UsernameAlreadyExistsException(user.username)
        if "email" in msg:
            logger.warning(event, field="email", email=user.email)
            raise UserAlreadyExistsException(user.email)

    async def create(self, user: User) -> User:
        """创建用户"""
        try:
            db_user = self._to_model(user)
            self.session.add(db_user)
            await self.session.flush()  # 获取生成的ID
            await self.session.refresh(db_user)
            return self._to_entity(db_user)
        except IntegrityError as e:
            await self.session.rollback()
            self._raise_conflict(e, user, "create_user_conflict")
            raise

    async def get_by_id(self, user_id: int) -> Optional[User]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user_id)
        )
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def get_by_username(self, username: str) -> Optional[User]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.username == username)
        )
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def update(self, user: User) -> User:
        """更新用户"""
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user.id)
        )
        db_user = result.scalar_one_or_none()

        if not db_user:
            raise UserNotFoundException(str(user.id))

        db_user.username = user.username
        db_user.email = user.email
        db_user.hashed_password = user.hashed_password
        db_user.is_active = user.is_active
        db_user.last_login = user.last_login

        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            self._raise_conflict(e, user, "update_user_conflict")
            raise
        await self.session.refresh(db_user)
        return self._to_entity(db_user)

    async def exists_by_username(self, username: str) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(UserModel)
            .where(UserModel.username == username)
        )
        return result.scalar() > 0

    async def exists_by_email(self, email: str) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(UserModel)
            .where(UserModel.email == email)
        )
        return result.scalar() > 0
