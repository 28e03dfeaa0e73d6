"""
清单条目与分类应用服务 - 每次提交后推送实时事件
"""
from typing import Callable, List, Optional

from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.exceptions import ItemNotFoundException
from domain.shopping.entity import ItemCategory, ListItem
from application.dto import (
    CategoryAssignDTO,
    CategoryListDTO,
    CategoryOrderDTO,
    ListItemCreateDTO,
    ListItemDTO,
    ListItemUpdateDTO,
)
from application.ports.realtime import (
    CategoryUpdatedEvent,
    ItemCreatedEvent,
    ItemDeletedEvent,
    ItemUpdatedEvent,
    ListEventPublisher,
)
from application.services.shopping_list_service import ListEventsMixin, item_to_dto, load_list
from core.logging_config import get_logger


logger = get_logger(__name__)


class ListItemApplicationService(ListEventsMixin):
    """条目/分类用例"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        publisher: Optional[ListEventPublisher] = None,
    ):
        self._uow_factory = uow_factory
        self._publisher = publisher

    async def list_items(self, list_id: int, user_id: int) -> List[ListItemDTO]:
        async with self._uow_factory(readonly=True) as uow:
            shopping_list = await load_list(uow, list_id)
            shopping_list.ensure_can_view(user_id)
            items = await uow.item_repository.list_by_list(list_id)
        return [item_to_dto(item) for item in items]

    async def create_item(self, list_id: int, user_id: int, data: ListItemCreateDTO) -> ListItemDTO:
        """新增条目；未指定分类时沿用该清单记住的分类"""
        async with self._uow_factory() as uow:
            shopping_list = await load_list(uow, list_id)
            shopping_list.ensure_can_edit(user_id)

            name = data.name.strip()
            category = data.category
            if category is None:
                mapping = await uow.item_repository.get_category(list_id, name)
                category = mapping.category if mapping else None
            else:
                await uow.item_repository.upsert_category(
                    ItemCategory(list_id=list_id, item_name=name, category=category)
                )
            created = await uow.item_repository.create(
                ListItem(id=None, list_id=list_id, name=name, count=data.count, category=category)
            )
        dto = item_to_dto(created)
        await self._publish(list_id, ItemCreatedEvent(item=dto.to_wire()))
        return dto

    async def update_item(
        self, list_id: int, item_id: int, user_id: int, data: ListItemUpdateDTO
    ) -> ListItemDTO:
        """只更新请求中出现的字段；修改分类时同时记住该条目名的分类"""
        fields = data.model_fields_set
        async with self._uow_factory() as uow:
            shopping_list = await load_list(uow, list_id)
            shopping_list.ensure_can_edit(user_id)
            item = await uow.item_repository.get_by_id(list_id, item_id)
            if item is None:
                raise ItemNotFoundException(item_id)

            updated_item = ListItem(
                id=item.id,
                list_id=item.list_id,
                name=data.name if "name" in fields and data.name else item.name,
                count=data.count if "count" in fields and data.count else item.count,
                completed=data.completed if "completed" in fields and data.completed is not None else item.completed,
                category=data.category if "category" in fields else item.category,
                recipe_id=item.recipe_id,
                recipe_name=item.recipe_name,
                created_at=item.created_at,
            )
            if "category" in fields:
                await uow.item_repository.upsert_category(
                    ItemCategory(list_id=list_id, item_name=updated_item.name, category=updated_item.category)
                )
            saved = await uow.item_repository.update(updated_item)
        dto = item_to_dto(saved)
        await self._publish(list_id, ItemUpdatedEvent(item=dto.to_wire()))
        return dto

    async def delete_item(self, list_id: int, item_id: int, user_id: int) -> None:
        async with self._uow_factory() as uow:
            shopping_list = await load_list(uow, list_id)
            shopping_list.ensure_can_edit(user_id)
            item = await uow.item_repository.get_by_id(list_id, item_id)
            if item is None:
                raise ItemNotFoundException(item_id)
            await uow.item_repository.delete(list_id, item_id)
        await self._publish(list_id, ItemDeletedEvent(item_id=item.id, item_name=item.name))

    # -------------------- 分类 --------------------

    async def list_categories(self, list_id: int, user_id: int) -> CategoryListDTO:
        async with self._uow_factory(readonly=True) as uow:
            shopping_list = await load_list(uow, list_id)
            shopping_list.ensure_can_view(user_id)
            categories = await uow.item_repository.distinct_categories(list_id)
        return CategoryListDTO(categories=categories, order=list(shopping_list.category_order))

    async def assign_category(self, list_id: int, user_id: int, data: CategoryAssignDTO) -> CategoryAssignDTO:
        """记住“条目名 -> 分类”并通知订阅者"""
        async with self._uow_factory() as uow:
            shopping_list = await load_list(uow, list_id)
            shopping_list.ensure_can_edit(user_id)
            mapping = await uow.item_repository.upsert_category(
                ItemCategory(list_id=list_id, item_name=data.item_name.strip(), category=data.category)
            )
        await self._publish(
            list_id,
            CategoryUpdatedEvent(item_name=mapping.item_name, category=mapping.category),
        )
        return CategoryAssignDTO(item_name=mapping.item_name, category=mapping.category)

    async def reorder_categories(self, list_id: int, user_id: int, data: CategoryOrderDTO) -> List[str]:
        async with self._uow_factory() as uow:
            shopping_list = await load_list(uow, list_id)
            shopping_list.ensure_can_edit(user_id)
            shopping_list.reorder_categories(data.order)
            updated = await uow.list_repository.update(shopping_list)
        return list(updated.category_order)

    async def delete_category(self, list_id: int, category: str, user_id: int) -> int:
        """删除该分类下的全部条目（分类记忆保留），逐条推送 item_deleted"""
        async with self._uow_factory() as uow:
            shopping_list = await load_list(uow, list_id)
            shopping_list.ensure_can_edit(user_id)
            items = await uow.item_repository.list_by_category(list_id, category)
            for item in items:
                await uow.item_repository.delete(list_id, item.id)
        for item in items:
            await self._publish(list_id, ItemDeletedEvent(item_id=item.id, item_name=item.name))
        logger.info("category_items_deleted", list_id=list_id, category=category, count=len(items))
        return len(items)
