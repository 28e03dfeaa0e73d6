"""
购物清单领域实体 - 清单、条目、分类记忆、协作者及访问规则
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from domain.common.exceptions import DomainValidationException, ListAccessDeniedException


class CollaboratorRole(str, Enum):
    EDITOR = "editor"
    VIEWER = "viewer"


@dataclass
class Collaborator:
    """清单协作者（邀请在被接受前也可查看清单）"""

    id: Optional[int]
    list_id: int
    user_id: int
    role: CollaboratorRole = CollaboratorRole.VIEWER
    accepted: bool = False
    username: Optional[str] = None
    created_at: Optional[datetime] = None

    def accept(self) -> None:
        self.accepted = True


@dataclass
class ListItem:
    """清单条目"""

    id: Optional[int]
    list_id: int
    name: str
    count: int = 1
    completed: bool = False
    category: Optional[str] = None
    recipe_id: Optional[int] = None
    recipe_name: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.name = (self.name or "").strip()
        if not self.name:
            raise DomainValidationException("Name is required", field="name")
        if self.count < 1:
            raise DomainValidationException("Count must be at least 1", field="count")


@dataclass
class ItemCategory:
    """按清单记住“条目名 -> 分类”，删除条目后仍保留"""

    list_id: int
    item_name: str
    category: Optional[str]


@dataclass
class ShoppingList:
    """购物清单聚合根 - 访问控制规则在此定义"""

    id: Optional[int]
    owner_id: int
    title: str
    description: str = ""
    category_order: List[str] = field(default_factory=list)
    collaborators: List[Collaborator] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.title = (self.title or "").strip()
        if not self.title:
            raise DomainValidationException("Title is required", field="title")

    # -------------------- 访问规则 --------------------
    def is_owner(self, user_id: int) -> bool:
        return self.owner_id == user_id

    def collaborator_for(self, user_id: int) -> Optional[Collaborator]:
        for collaborator in self.collaborators:
            if collaborator.user_id == user_id:
                return collaborator
        return None

    def can_view(self, user_id: int) -> bool:
        """业务规则：所有者或任一协作者可查看"""
        return self.is_owner(user_id) or self.collaborator_for(user_id) is not None

    def can_edit(self, user_id: int) -> bool:
        """业务规则：所有者或 editor 角色可修改条目与分类"""
        if self.is_owner(user_id):
            return True
        collaborator = self.collaborator_for(user_id)
        return collaborator is not None and collaborator.role == CollaboratorRole.EDITOR

    def ensure_can_view(self, user_id: int) -> None:
        if not self.can_view(user_id):
            raise ListAccessDeniedException(self.id, required="view")

    def ensure_can_edit(self, user_id: int) -> None:
        if not self.can_edit(user_id):
            raise ListAccessDeniedException(self.id, required="edit")

    def ensure_owner(self, user_id: int) -> None:
        if not self.is_owner(user_id):
            raise ListAccessDeniedException(self.id, required="owner")

    # -------------------- 状态变更 --------------------
    def rename(self, title: Optional[str] = None, description: Optional[str] = None) -> None:
        if title is not None:
            title = title.strip()
            if not title:
                raise DomainValidationException("Title is required", field="title")
            self.title = title
        if description is not None:
            self.description = description
        self.updated_at = datetime.now(timezone.utc)

    def reorder_categories(self, order: List[str]) -> None:
        seen = set()
        cleaned = []
        for name in order:
            if name and name not in seen:
                seen.add(name)
                cleaned.append(name)
        self.category_order = cleaned
        self.updated_at = datetime.now(timezone.utc)
