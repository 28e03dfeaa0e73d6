"""
菜谱应用服务 - 菜谱 CRUD 与“加入清单”
"""
from typing import Callable, List, Optional

from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.exceptions import ItemNotFoundException, RecipeNotFoundException
from domain.recipe.entity import Recipe, RecipeItem
from domain.shopping.entity import ItemCategory, ListItem
from application.dto import (
    AddRecipeToListDTO,
    ItemsAddedDTO,
    RecipeCreateDTO,
    RecipeDTO,
    RecipeItemCreateDTO,
    RecipeItemDTO,
    RecipeUpdateDTO,
)
from application.ports.realtime import CategoryUpdate, ItemsAddedEvent, ListEventPublisher
from application.services.shopping_list_service import ListEventsMixin, item_to_dto, load_list
from core.logging_config import get_logger


logger = get_logger(__name__)


def recipe_to_dto(recipe: Recipe) -> RecipeDTO:
    return RecipeDTO(
        id=recipe.id,
        owner_id=recipe.owner_id,
        title=recipe.title,
        description=recipe.description,
        items=[RecipeItemDTO(id=i.id, name=i.name, category=i.category) for i in recipe.items],
        created_at=recipe.created_at,
        updated_at=recipe.updated_at,
    )


class RecipeApplicationService(ListEventsMixin):
    """菜谱用例（菜谱仅所有者可见）"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        publisher: Optional[ListEventPublisher] = None,
    ):
        self._uow_factory = uow_factory
        self._publisher = publisher

    async def _load_owned(self, uow: AbstractUnitOfWork, recipe_id: int, user_id: int) -> Recipe:
        recipe = await uow.recipe_repository.get_by_id(recipe_id)
        if recipe is None:
            raise RecipeNotFoundException(recipe_id)
        recipe.ensure_owner(user_id)
        return recipe

    async def list_recipes(self, user_id: int) -> List[RecipeDTO]:
        async with self._uow_factory(readonly=True) as uow:
            recipes = await uow.recipe_repository.list_by_owner(user_id)
        return [recipe_to_dto(r) for r in recipes]

    async def get_recipe(self, recipe_id: int, user_id: int) -> RecipeDTO:
        async with self._uow_factory(readonly=True) as uow:
            recipe = await self._load_owned(uow, recipe_id, user_id)
        return recipe_to_dto(recipe)

    async def create_recipe(self, user_id: int, data: RecipeCreateDTO) -> RecipeDTO:
        async with self._uow_factory() as uow:
            recipe = Recipe(
                id=None,
                owner_id=user_id,
                title=data.title,
                description=data.description,
                items=[RecipeItem(id=None, recipe_id=None, name=i.name, category=i.category) for i in data.items],
            )
            created = await uow.recipe_repository.create(recipe)
        logger.info("recipe_created", recipe_id=created.id, owner_id=user_id, items=len(created.items))
        return recipe_to_dto(created)

    async def update_recipe(self, recipe_id: int, user_id: int, data: RecipeUpdateDTO) -> RecipeDTO:
        async with self._uow_factory() as uow:
            recipe = await self._load_owned(uow, recipe_id, user_id)
            recipe.update_details(title=data.title, description=data.description)
            updated = await uow.recipe_repository.update(recipe)
        return recipe_to_dto(updated)

    async def delete_recipe(self, recipe_id: int, user_id: int) -> None:
        async with self._uow_factory() as uow:
            await self._load_owned(uow, recipe_id, user_id)
            await uow.recipe_repository.delete(recipe_id)

    async def add_recipe_item(self, recipe_id: int, user_id: int, data: RecipeItemCreateDTO) -> RecipeItemDTO:
        async with self._uow_factory() as uow:
            await self._load_owned(uow, recipe_id, user_id)
            item = await uow.recipe_repository.add_item(
                RecipeItem(id=None, recipe_id=recipe_id, name=data.name, category=data.category)
            )
        return RecipeItemDTO(id=item.id, name=item.name, category=item.category)

    async def remove_recipe_item(self, recipe_id: int, item_id: int, user_id: int) -> None:
        async with self._uow_factory() as uow:
            await self._load_owned(uow, recipe_id, user_id)
            if not await uow.recipe_repository.remove_item(recipe_id, item_id):
                raise ItemNotFoundException(item_id)

    async def add_to_list(self, recipe_id: int, user_id: int, data: AddRecipeToListDTO) -> ItemsAddedDTO:
        """
        把菜谱条目加入清单

        - selected_item_ids 为菜谱条目下标，为空时加入全部
        - 带分类的条目同时写入清单的分类记忆
        - 提交后推送 items_added
        """
        async with self._uow_factory() as uow:
            recipe = await self._load_owned(uow, recipe_id, user_id)
            shopping_list = await load_list(uow, data.list_id)
            shopping_list.ensure_can_edit(user_id)

            created: List[ListItem] = []
            category_updates: List[CategoryUpdate] = []
            for source in recipe.select_items(data.selected_item_ids):
                created.append(
                    await uow.item_repository.create(
                        ListItem(
                            id=None,
                            list_id=data.list_id,
                            name=source.name,
                            category=source.category or None,
                            recipe_id=recipe.id,
                            recipe_name=recipe.title,
                        )
                    )
                )
                if source.category:
                    await uow.item_repository.upsert_category(
                        ItemCategory(list_id=data.list_id, item_name=source.name, category=source.category)
                    )
                    category_updates.append(CategoryUpdate(item_name=source.name, category=source.category))

        items = [item_to_dto(item) for item in created]
        await self._publish(
            data.list_id,
            ItemsAddedEvent(
                count=len(items),
                items=[dto.to_wire() for dto in items],
                category_updates=category_updates,
            ),
        )
        logger.info("recipe_added_to_list", recipe_id=recipe_id, list_id=data.list_id, count=len(items))
        return ItemsAddedDTO(items_added=len(items), items=items)
