"""
购物清单仓储实现 - 清单/协作者与条目/分类记忆
"""
from typing import Dict, List, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import (
    CollaboratorAlreadyExistsException,
    ItemNotFoundException,
    ListNotFoundException,
)
from domain.shopping.entity import (
    Collaborator,
    CollaboratorRole,
    ItemCategory,
    ListItem,
    ShoppingList,
)
from domain.shopping.repository import ListItemRepository, ShoppingListRepository
from infrastructure.models import (
    CollaboratorModel,
    ItemCategoryModel,
    ListItemModel,
    ShoppingListModel,
    UserModel,
)


logger = get_logger(__name__)


def _collaborator_to_entity(model: CollaboratorModel, username: Optional[str] = None) -> Collaborator:
    return Collaborator(
        id=model.id,
        list_id=model.list_id,
        user_id=model.user_id,
        role=CollaboratorRole(model.role),
        accepted=bool(model.accepted),
        username=username,
        created_at=model.created_at,
    )


class SQLAlchemyShoppingListRepository(ShoppingListRepository):
    """清单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ShoppingListModel, collaborators: List[Collaborator]) -> ShoppingList:
        return ShoppingList(
            id=model.id,
            owner_id=model.owner_id,
            title=model.title,
            description=model.description or "",
            category_order=list(model.category_order or []),
            collaborators=collaborators,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _collaborators_for(self, list_ids: List[int]) -> Dict[int, List[Collaborator]]:
        grouped: Dict[int, List[Collaborator]] = {list_id: [] for list_id in list_ids}
        if not list_ids:
            return grouped
        result = await self.session.execute(
            select(CollaboratorModel, UserModel.username)
            .join(UserModel, UserModel.id == CollaboratorModel.user_id)
            .where(CollaboratorModel.list_id.in_(list_ids))
            .order_by(CollaboratorModel.id)
        )
        for model, username in result.all():
            grouped[model.list_id].append(_collaborator_to_entity(model, username))
        return grouped

    async def _get_model(self, list_id: int) -> Optional[ShoppingListModel]:
        result = await self.session.execute(
            select(ShoppingListModel).where(ShoppingListModel.id == list_id)
        )
        return result.scalar_one_or_none()

    async def create(self, shopping_list: ShoppingList) -> ShoppingList:
        model = ShoppingListModel(
            owner_id=shopping_list.owner_id,
            title=shopping_list.title,
            description=shopping_list.description,
            category_order=list(shopping_list.category_order),
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model, [])

    async def get_by_id(self, list_id: int) -> Optional[ShoppingList]:
        model = await self._get_model(list_id)
        if model is None:
            return None
        collaborators = await self._collaborators_for([model.id])
        return self._to_entity(model, collaborators[model.id])

    async def list_for_user(self, user_id: int) -> List[ShoppingList]:
        shared_ids = select(CollaboratorModel.list_id).where(CollaboratorModel.user_id == user_id)
        result = await self.session.execute(
            select(ShoppingListModel)
            .where(or_(ShoppingListModel.owner_id == user_id, ShoppingListModel.id.in_(shared_ids)))
            .order_by(ShoppingListModel.updated_at.desc(), ShoppingListModel.id.desc())
        )
        models = result.scalars().all()
        collaborators = await self._collaborators_for([m.id for m in models])
        return [self._to_entity(m, collaborators[m.id]) for m in models]

    async def update(self, shopping_list: ShoppingList) -> ShoppingList:
        model = await self._get_model(shopping_list.id)
        if model is None:
            raise ListNotFoundException(shopping_list.id)
        model.title = shopping_list.title
        model.description = shopping_list.description
        model.category_order = list(shopping_list.category_order)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model, list(shopping_list.collaborators))

    async def delete(self, list_id: int) -> bool:
        model = await self._get_model(list_id)
        if model is None:
            return False
        # SQLite 默认不启用外键级联，显式清理子表
        for child in (ListItemModel, ItemCategoryModel, CollaboratorModel):
            await self.session.execute(delete(child).where(child.list_id == list_id))
        await self.session.delete(model)
        await self.session.flush()
        return True

    async def add_collaborator(self, collaborator: Collaborator) -> Collaborator:
        model = CollaboratorModel(
            list_id=collaborator.list_id,
            user_id=collaborator.user_id,
            role=collaborator.role.value,
            accepted=collaborator.accepted,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            logger.warning(
                "add_collaborator_conflict",
                list_id=collaborator.list_id,
                user_id=collaborator.user_id,
            )
            raise CollaboratorAlreadyExistsException(collaborator.list_id, collaborator.user_id)
        await self.session.refresh(model)
        return _collaborator_to_entity(model, collaborator.username)

    async def get_collaborator(self, list_id: int, collaborator_id: int) -> Optional[Collaborator]:
        result = await self.session.execute(
            select(CollaboratorModel, UserModel.username)
            .join(UserModel, UserModel.id == CollaboratorModel.user_id)
            .where(CollaboratorModel.list_id == list_id, CollaboratorModel.id == collaborator_id)
        )
        row = result.first()
        if row is None:
            return None
        model, username = row
        return _collaborator_to_entity(model, username)

    async def update_collaborator(self, collaborator: Collaborator) -> Collaborator:
        result = await self.session.execute(
            select(CollaboratorModel).where(CollaboratorModel.id == collaborator.id)
        )
        model = result.scalar_one()
        model.role = collaborator.role.value
        model.accepted = collaborator.accepted
        await self.session.flush()
        return _collaborator_to_entity(model, collaborator.username)

    async def remove_collaborator(self, list_id: int, collaborator_id: int) -> bool:
        result = await self.session.execute(
            delete(CollaboratorModel).where(
                CollaboratorModel.list_id == list_id,
                CollaboratorModel.id == collaborator_id,
            )
        )
        return (result.rowcount or 0) > 0


class SQLAlchemyListItemRepository(ListItemRepository):
    """条目与分类记忆仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ListItemModel) -> ListItem:
        return ListItem(
            id=model.id,
            list_id=model.list_id,
            name=model.name,
            count=model.count,
            completed=bool(model.completed),
            category=model.category,
            recipe_id=model.recipe_id,
            recipe_name=model.recipe_name,
            created_at=model.created_at,
        )

    async def _get_model(self, list_id: int, item_id: int) -> Optional[ListItemModel]:
        result = await self.session.execute(
            select(ListItemModel).where(ListItemModel.list_id == list_id, ListItemModel.id == item_id)
        )
        return result.scalar_one_or_none()

    async def create(self, item: ListItem) -> ListItem:
        model = ListItemModel(
            list_id=item.list_id,
            name=item.name,
            count=item.count,
            completed=item.completed,
            category=item.category,
            recipe_id=item.recipe_id,
            recipe_name=item.recipe_name,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, list_id: int, item_id: int) -> Optional[ListItem]:
        model = await self._get_model(list_id, item_id)
        return self._to_entity(model) if model else None

    async def list_by_list(self, list_id: int) -> List[ListItem]:
        result = await self.session.execute(
            select(ListItemModel).where(ListItemModel.list_id == list_id).order_by(ListItemModel.id)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_category(self, list_id: int, category: str) -> List[ListItem]:
        result = await self.session.execute(
            select(ListItemModel)
            .where(ListItemModel.list_id == list_id, ListItemModel.category == category)
            .order_by(ListItemModel.id)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, item: ListItem) -> ListItem:
        model = await self._get_model(item.list_id, item.id)
        if model is None:
            raise ItemNotFoundException(item.id)
        model.name = item.name
        model.count = item.count
        model.completed = item.completed
        model.category = item.category
        await self.session.flush()
        return self._to_entity(model)

    async def delete(self, list_id: int, item_id: int) -> bool:
        result = await self.session.execute(
            delete(ListItemModel).where(ListItemModel.list_id == list_id, ListItemModel.id == item_id)
        )
        return (result.rowcount or 0) > 0

    async def get_category(self, list_id: int, item_name: str) -> Optional[ItemCategory]:
        result = await self.session.execute(
            select(ItemCategoryModel).where(
                ItemCategoryModel.list_id == list_id,
                ItemCategoryModel.item_name == item_name,
            )
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return ItemCategory(list_id=model.list_id, item_name=model.item_name, category=model.category)

    async def upsert_category(self, mapping: ItemCategory) -> ItemCategory:
        result = await self.session.execute(
            select(ItemCategoryModel).where(
                ItemCategoryModel.list_id == mapping.list_id,
                ItemCategoryModel.item_name == mapping.item_name,
            )
        )
        model = result.scalar_one_or_none()
        if model is None:
            model = ItemCategoryModel(
                list_id=mapping.list_id,
                item_name=mapping.item_name,
                category=mapping.category,
            )
            self.session.add(model)
        else:
            model.category = mapping.category
        await self.session.flush()
        return mapping

    async def distinct_categories(self, list_id: int) -> List[str]:
        """清单中使用过的分类：包括条目当前分类与记忆映射"""
        names = set()
        for column, table_list_id in (
            (ListItemModel.category, ListItemModel.list_id),
            (ItemCategoryModel.category, ItemCategoryModel.list_id),
        ):
            result = await self.session.execute(
                select(column).where(table_list_id == list_id, column.is_not(None)).distinct()
            )
            names.update(v for v in result.scalars().all() if v)
        return sorted(names)
