"""
菜谱领域实体
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from domain.common.exceptions import DomainValidationException, RecipeAccessDeniedException


@dataclass
class RecipeItem:
    id: Optional[int]
    recipe_id: Optional[int]
    name: str
    category: Optional[str] = None

    def __post_init__(self):
        self.name = (self.name or "").strip()
        if not self.name:
            raise DomainValidationException("Name is required", field="name")


@dataclass
class Recipe:
    """菜谱 - 仅所有者可见"""

    id: Optional[int]
    owner_id: int
    title: str
    description: str = ""
    items: List[RecipeItem] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.title = (self.title or "").strip()
        if not self.title:
            raise DomainValidationException("Title is required", field="title")

    def ensure_owner(self, user_id: int) -> None:
        if self.owner_id != user_id:
            raise RecipeAccessDeniedException(self.id)

    def update_details(self, title: Optional[str] = None, description: Optional[str] = None) -> None:
        if title is not None:
            title = title.strip()
            if not title:
                raise DomainValidationException("Title is required", field="title")
            self.title = title
        if description is not None:
            self.description = description
        self.updated_at = datetime.now(timezone.utc)

    def select_items(self, selected_indexes: Optional[Sequence[int]] = None) -> List[RecipeItem]:
        """业务规则：按下标挑选条目；未指定或为空时取全部"""
        if not selected_indexes:
            return list(self.items)
        wanted = set(selected_indexes)
        return [item for idx, item in enumerate(self.items) if idx in wanted]
