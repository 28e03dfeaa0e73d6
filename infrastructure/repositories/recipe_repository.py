"""
菜谱仓储实现
"""
from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import RecipeNotFoundException
from domain.recipe.entity import Recipe, RecipeItem
from domain.recipe.repository import RecipeRepository
from infrastructure.models import RecipeItemModel, RecipeModel


class SQLAlchemyRecipeRepository(RecipeRepository):
    """菜谱仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _item_to_entity(model: RecipeItemModel) -> RecipeItem:
        return RecipeItem(id=model.id, recipe_id=model.recipe_id, name=model.name, category=model.category)

    def _to_entity(self, model: RecipeModel, items: List[RecipeItem]) -> Recipe:
        return Recipe(
            id=model.id,
            owner_id=model.owner_id,
            title=model.title,
            description=model.description or "",
            items=items,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _items_for(self, recipe_ids: List[int]) -> Dict[int, List[RecipeItem]]:
        grouped: Dict[int, List[RecipeItem]] = {rid: [] for rid in recipe_ids}
        if not recipe_ids:
            return grouped
        result = await self.session.execute(
            select(RecipeItemModel)
            .where(RecipeItemModel.recipe_id.in_(recipe_ids))
            .order_by(RecipeItemModel.id)
        )
        for model in result.scalars().all():
            grouped[model.recipe_id].append(self._item_to_entity(model))
        return grouped

    async def _get_model(self, recipe_id: int) -> Optional[RecipeModel]:
        result = await self.session.execute(select(RecipeModel).where(RecipeModel.id == recipe_id))
        return result.scalar_one_or_none()

    async def create(self, recipe: Recipe) -> Recipe:
        model = RecipeModel(owner_id=recipe.owner_id, title=recipe.title, description=recipe.description)
        self.session.add(model)
        await self.session.flush()
        items = []
        for item in recipe.items:
            item_model = RecipeItemModel(recipe_id=model.id, name=item.name, category=item.category)
            self.session.add(item_model)
            items.append(item_model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model, [self._item_to_entity(m) for m in items])

    async def get_by_id(self, recipe_id: int) -> Optional[Recipe]:
        model = await self._get_model(recipe_id)
        if model is None:
            return None
        items = await self._items_for([model.id])
        return self._to_entity(model, items[model.id])

    async def list_by_owner(self, owner_id: int) -> List[Recipe]:
        result = await self.session.execute(
            select(RecipeModel).where(RecipeModel.owner_id == owner_id).order_by(RecipeModel.id.desc())
        )
        models = result.scalars().all()
        items = await self._items_for([m.id for m in models])
        return [self._to_entity(m, items[m.id]) for m in models]

    async def update(self, recipe: Recipe) -> Recipe:
        model = await self._get_model(recipe.id)
        if model is None:
            raise RecipeNotFoundException(recipe.id)
        model.title = recipe.title
        model.description = recipe.description
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model, list(recipe.items))

    async def delete(self, recipe_id: int) -> bool:
        model = await self._get_model(recipe_id)
        if model is None:
            return False
        await self.session.execute(delete(RecipeItemModel).where(RecipeItemModel.recipe_id == recipe_id))
        await self.session.delete(model)
        await self.session.flush()
        return True

    async def add_item(self, item: RecipeItem) -> RecipeItem:
        model = RecipeItemModel(recipe_id=item.recipe_id, name=item.name, category=item.category)
        self.session.add(model)
        await self.session.flush()
        return self._item_to_entity(model)

    async def remove_item(self, recipe_id: int, item_id: int) -> bool:
        result = await self.session.execute(
            delete(RecipeItemModel).where(
                RecipeItemModel.recipe_id == recipe_id,
                RecipeItemModel.id == item_id,
            )
        )
        return (result.rowcount or 0) > 0
