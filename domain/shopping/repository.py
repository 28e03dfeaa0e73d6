"""
购物清单仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Collaborator, ItemCategory, ListItem, ShoppingList


class ShoppingListRepository(ABC):
    """清单与协作者仓储抽象接口"""

    @abstractmethod
    async def create(self, shopping_list: ShoppingList) -> ShoppingList:
        pass

    @abstractmethod
    async def get_by_id(self, list_id: int) -> Optional[ShoppingList]:
        """获取清单（包含协作者）"""
        pass

    @abstractmethod
    async def list_for_user(self, user_id: int) -> List[ShoppingList]:
        """用户拥有或参与协作的清单"""
        pass

    @abstractmethod
    async def update(self, shopping_list: ShoppingList) -> ShoppingList:
        pass

    @abstractmethod
    async def delete(self, list_id: int) -> bool:
        pass

    @abstractmethod
    async def add_collaborator(self, collaborator: Collaborator) -> Collaborator:
        pass

    @abstractmethod
    async def get_collaborator(self, list_id: int, collaborator_id: int) -> Optional[Collaborator]:
        pass

    @abstractmethod
    async def update_collaborator(self, collaborator: Collaborator) -> Collaborator:
        pass

    @abstractmethod
    async def remove_collaborator(self, list_id: int, collaborator_id: int) -> bool:
        pass


class ListItemRepository(ABC):
    """清单条目与分类记忆仓储抽象接口"""

    @abstractmethod
    async def create(self, item: ListItem) -> ListItem:
        pass

    @abstractmethod
    async def get_by_id(self, list_id: int, item_id: int) -> Optional[ListItem]:
        pass

    @abstractmethod
    async def list_by_list(self, list_id: int) -> List[ListItem]:
        pass

    @abstractmethod
    async def list_by_category(self, list_id: int, category: str) -> List[ListItem]:
        pass

    @abstractmethod
    async def update(self, item: ListItem) -> ListItem:
        pass

    @abstractmethod
    async def delete(self, list_id: int, item_id: int) -> bool:
        pass

    @abstractmethod
    async def get_category(self, list_id: int, item_name: str) -> Optional[ItemCategory]:
        pass

    @abstractmethod
    async def upsert_category(self, mapping: ItemCategory) -> ItemCategory:
        pass

    @abstractmethod
    async def distinct_categories(self, list_id: int) -> List[str]:
        pass
