"""
购物清单相关数据库模型：清单、条目、分类记忆、协作者
"""
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShoppingListModel(Base):
    __tablename__ = "shopping_lists"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(200), nullable=False, comment="清单标题")
    description = Column(Text, nullable=False, default="", comment="描述")
    category_order = Column(JSON, nullable=False, default=list, comment="分类展示顺序")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<ShoppingListModel(id={self.id}, owner_id={self.owner_id}, title='{self.title}')>"


class ListItemModel(Base):
    __tablename__ = "list_items"

    id = Column(Integer, primary_key=True, index=True)
    list_id = Column(Integer, ForeignKey("shopping_lists.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(200), nullable=False, comment="条目名称")
    count = Column(Integer, nullable=False, default=1, comment="数量")
    completed = Column(Boolean, nullable=False, default=False, comment="是否已完成")
    category = Column(String(100), nullable=True, comment="分类")
    recipe_id = Column(Integer, nullable=True, comment="来源菜谱ID")
    recipe_name = Column(String(200), nullable=True, comment="来源菜谱名称")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class ItemCategoryModel(Base):
    """清单内条目名到分类的记忆映射"""

    __tablename__ = "item_categories"
    __table_args__ = (
        UniqueConstraint("list_id", "item_name", name="uq_item_categories_list_item"),
    )

    id = Column(Integer, primary_key=True)
    list_id = Column(Integer, ForeignKey("shopping_lists.id", ondelete="CASCADE"), index=True, nullable=False)
    item_name = Column(String(200), nullable=False)
    category = Column(String(100), nullable=True)


class CollaboratorModel(Base):
    __tablename__ = "list_collaborators"
    __table_args__ = (
        UniqueConstraint("list_id", "user_id", name="uq_list_collaborators_list_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    list_id = Column(Integer, ForeignKey("shopping_lists.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    role = Column(String(16), nullable=False, default="viewer", comment="editor | viewer")
    accepted = Column(Boolean, nullable=False, default=False, comment="是否已接受邀请")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
