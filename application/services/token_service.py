"""
令牌服务 - 签发与校验 JWT 访问令牌
"""
from typing import Optional
from datetime import datetime, timedelta, timezone
import uuid

import jwt

from domain.user.entity import User
from core.config import settings
from core.exceptions import TokenExpiredException


class TokenService:
    """访问令牌服务（无状态）"""

    def create_access_token(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        """创建访问令牌"""
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode = {
            "sub": str(user.id),
            "username": user.username,
            "exp": expire,
            "type": "access",
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    async def verify_access_token(self, token: str) -> Optional[int]:
        """Verify an access JWT and return the user id.

        - Expired token: raise TokenExpiredException
        - Invalid token or wrong type: return None
        """
        try:
            payload = jwt.decode(
                token,
                settings.SECRET_KEY,
                algorithms=[settings.ALGORITHM],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException()
        except jwt.InvalidTokenError:
            return None

        if payload.get("type") != "access":
            return None

        user_id = payload.get("sub")
        if user_id is None:
            return None
        try:
            return int(user_id)
        except (TypeError, ValueError):
            return None
