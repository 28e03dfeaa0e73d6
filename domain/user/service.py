"""
用户领域服务 - 处理注册与认证的业务流程
"""
from typing import Optional
from datetime import datetime, timezone
import hashlib
import hmac
import secrets

from .entity import User
from .repository import UserRepository
from domain.common.exceptions import (
    DomainValidationException,
    UserAlreadyExistsException,
    UsernameAlreadyExistsException,
    UserInactiveException,
)


class PasswordService:
    """密码服务 - 处理密码哈希与校验"""

    ITERATIONS = 100000

    @staticmethod
    def hash_password(password: str) -> str:
        """密码哈希"""
        salt = secrets.token_hex(32)
        pwd_hash = hashlib.pbkdf2_hmac('sha256',
                                       password.encode('utf-8'),
                                       salt.encode('utf-8'),
                                       PasswordService.ITERATIONS)
        return f"{salt}${pwd_hash.hex()}"

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """验证密码"""
        try:
            salt, pwd_hash = hashed_password.split('$')
        except ValueError:
            return False
        new_hash = hashlib.pbkdf2_hmac('sha256',
                                      plain_password.encode('utf-8'),
                                      salt.encode('utf-8'),
                                      PasswordService.ITERATIONS)
        return hmac.compare_digest(new_hash.hex(), pwd_hash)


class UserDomainService:
    """用户领域服务 - 编排注册与认证流程"""

    def __init__(self, user_repository: UserRepository):
        self.user_repository = user_repository
        self.password_service = PasswordService()

    async def register_user(self, username: str, email: str, password: str) -> User:
        """用户注册的业务流程"""
        if not password:
            raise DomainValidationException("Password is required", field="password")

        if await self.user_repository.exists_by_username(username):
            raise UsernameAlreadyExistsException(username)

        if await self.user_repository.exists_by_email(email):
            raise UserAlreadyExistsException(email)

        try:
            user = User(
                id=None,
                username=username,
                email=email,
                hashed_password=self.password_service.hash_password(password),
                is_active=True,
                created_at=datetime.now(timezone.utc),
                updated_at=datetime.now(timezone.utc),
            )
        except ValueError as exc:
            raise DomainValidationException(str(exc)) from exc

        return await self.user_repository.create(user)

    async def authenticate_user(self, username: str, password: str) -> Optional[User]:
        """用户认证的业务流程（支持用户名或邮箱登录）"""
        user = await self.user_repository.get_by_username(username)
        if not user:
            user = await self.user_repository.get_by_email(username)

        if not user:
            return None

        if not self.password_service.verify_password(password, user.hashed_password):
            return None

        if not user.is_active:
            raise UserInactiveException()

        user.record_login()
        return await self.user_repository.update(user)
