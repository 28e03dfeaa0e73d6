"""
用户领域实体 - 包含核心业务规则
"""
from datetime import datetime, timezone
from typing import Optional
from dataclasses import dataclass
import re


@dataclass
class User:
    """用户实体 - 领域核心"""

    id: Optional[int]
    username: str
    email: str
    hashed_password: str
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    def __post_init__(self):
        """初始化后的业务规则验证"""
        self.validate_email()
        self.validate_username()

    def validate_email(self) -> None:
        """业务规则：邮箱格式验证"""
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, self.email):
            raise ValueError(f"Invalid email: {self.email}")

    def validate_username(self) -> None:
        """业务规则：用户名验证"""
        if len(self.username) < 3:
            raise ValueError("Username must be at least 3 characters")
        if len(self.username) > 50:
            raise ValueError("Username must be at most 50 characters")

    def record_login(self) -> None:
        """业务规则：记录登录时间"""
        self.last_login = datetime.now(timezone.utc)
