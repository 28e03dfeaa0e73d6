"""
用户数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    """
    用户数据库模型

    所有业务规则都在 domain.user.entity.User 中
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    username = Column(String(50), unique=True, index=True, nullable=False, comment="用户名")
    email = Column(String(100), unique=True, index=True, nullable=False, comment="邮箱")
    hashed_password = Column(String(255), nullable=False, comment="密码哈希")
    is_active = Column(Boolean, default=True, nullable=False, comment="是否激活")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    last_login = Column(DateTime(timezone=True), nullable=True, comment="最后登录时间")

    def __repr__(self):
        return f"<UserModel(id={self.id}, username='{self.username}')>"
