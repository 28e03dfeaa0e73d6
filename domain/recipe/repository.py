"""
菜谱仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Recipe, RecipeItem


class RecipeRepository(ABC):

    @abstractmethod
    async def create(self, recipe: Recipe) -> Recipe:
        """创建菜谱（连同条目）"""
        pass

    @abstractmethod
    async def get_by_id(self, recipe_id: int) -> Optional[Recipe]:
        pass

    @abstractmethod
    async def list_by_owner(self, owner_id: int) -> List[Recipe]:
        pass

    @abstractmethod
    async def update(self, recipe: Recipe) -> Recipe:
        pass

    @abstractmethod
    async def delete(self, recipe_id: int) -> bool:
        pass

    @abstractmethod
    async def add_item(self, item: RecipeItem) -> RecipeItem:
        pass

    @abstractmethod
    async def remove_item(self, recipe_id: int, item_id: int) -> bool:
        pass
