"""
购物清单应用服务 - 清单与协作者用例
"""
from typing import Callable, List, Optional

from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.exceptions import (
    CollaboratorNotFoundException,
    DomainValidationException,
    ListAccessDeniedException,
    ListNotFoundException,
    UserNotFoundException,
)
from domain.shopping.entity import Collaborator, CollaboratorRole, ListItem, ShoppingList
from application.dto import (
    CollaboratorDTO,
    CollaboratorInviteDTO,
    ListItemDTO,
    ShoppingListCreateDTO,
    ShoppingListDTO,
    ShoppingListUpdateDTO,
)
from application.ports.realtime import ListEventPublisher, RealtimeEvent
from core.logging_config import get_logger


logger = get_logger(__name__)


async def load_list(uow: AbstractUnitOfWork, list_id: int) -> ShoppingList:
    """读取清单，不存在时抛出 ListNotFoundException"""
    shopping_list = await uow.list_repository.get_by_id(list_id)
    if shopping_list is None:
        raise ListNotFoundException(list_id)
    return shopping_list


def item_to_dto(item: ListItem) -> ListItemDTO:
    return ListItemDTO(
        id=item.id,
        list_id=item.list_id,
        name=item.name,
        count=item.count,
        completed=item.completed,
        category=item.category,
        recipe_id=item.recipe_id,
        recipe_name=item.recipe_name,
        created_at=item.created_at,
    )


def collaborator_to_dto(collaborator: Collaborator) -> CollaboratorDTO:
    return CollaboratorDTO(
        id=collaborator.id,
        list_id=collaborator.list_id,
        user_id=collaborator.user_id,
        username=collaborator.username,
        role=collaborator.role.value,
        accepted=collaborator.accepted,
        created_at=collaborator.created_at,
    )


def list_to_dto(shopping_list: ShoppingList) -> ShoppingListDTO:
    return ShoppingListDTO(
        id=shopping_list.id,
        owner_id=shopping_list.owner_id,
        title=shopping_list.title,
        description=shopping_list.description,
        category_order=list(shopping_list.category_order),
        collaborators=[collaborator_to_dto(c) for c in shopping_list.collaborators],
        created_at=shopping_list.created_at,
        updated_at=shopping_list.updated_at,
    )


class ListEventsMixin:
    """提交成功后推送清单事件；推送失败只记录日志，不影响已提交的变更"""

    _publisher: Optional[ListEventPublisher]

    async def _publish(self, list_id: int, event: RealtimeEvent) -> None:
        if self._publisher is None:
            return
        try:
            await self._publisher.publish(list_id, event)
        except Exception as exc:
            logger.warning("list_event_publish_failed", list_id=list_id, event_type=event.type, error=str(exc))


class ShoppingListApplicationService(ListEventsMixin):
    """清单应用服务"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        publisher: Optional[ListEventPublisher] = None,
    ):
        self._uow_factory = uow_factory
        self._publisher = publisher

    async def create_list(self, owner_id: int, data: ShoppingListCreateDTO) -> ShoppingListDTO:
        async with self._uow_factory() as uow:
            shopping_list = ShoppingList(
                id=None,
                owner_id=owner_id,
                title=data.title,
                description=data.description,
            )
            created = await uow.list_repository.create(shopping_list)
        logger.info("list_created", list_id=created.id, owner_id=owner_id)
        return list_to_dto(created)

    async def list_lists(self, user_id: int) -> List[ShoppingListDTO]:
        """我拥有或参与协作的清单"""
        async with self._uow_factory(readonly=True) as uow:
            lists = await uow.list_repository.list_for_user(user_id)
        return [list_to_dto(item) for item in lists]

    async def get_list(self, list_id: int, user_id: int) -> ShoppingListDTO:
        return list_to_dto(await self.authorize_view(list_id, user_id))

    async def authorize_view(self, list_id: int, user_id: int) -> ShoppingList:
        """校验查看权限（所有者或协作者），返回清单实体"""
        async with self._uow_factory(readonly=True) as uow:
            shopping_list = await load_list(uow, list_id)
        shopping_list.ensure_can_view(user_id)
        return shopping_list

    async def update_list(self, list_id: int, user_id: int, data: ShoppingListUpdateDTO) -> ShoppingListDTO:
        async with self._uow_factory() as uow:
            shopping_list = await load_list(uow, list_id)
            shopping_list.ensure_owner(user_id)
            shopping_list.rename(title=data.title, description=data.description)
            updated = await uow.list_repository.update(shopping_list)
        return list_to_dto(updated)

    async def delete_list(self, list_id: int, user_id: int) -> None:
        async with self._uow_factory() as uow:
            shopping_list = await load_list(uow, list_id)
            shopping_list.ensure_owner(user_id)
            await uow.list_repository.delete(list_id)
        logger.info("list_deleted", list_id=list_id, owner_id=user_id)

    # -------------------- 协作者 --------------------

    async def list_collaborators(self, list_id: int, user_id: int) -> List[CollaboratorDTO]:
        shopping_list = await self.authorize_view(list_id, user_id)
        return [collaborator_to_dto(c) for c in shopping_list.collaborators]

    async def invite_collaborator(
        self, list_id: int, user_id: int, data: CollaboratorInviteDTO
    ) -> CollaboratorDTO:
        """所有者按用户名或邮箱邀请协作者"""
        async with self._uow_factory() as uow:
            shopping_list = await load_list(uow, list_id)
            shopping_list.ensure_owner(user_id)

            invitee = await uow.user_repository.get_by_username(data.user)
            if invitee is None:
                invitee = await uow.user_repository.get_by_email(data.user)
            if invitee is None:
                raise UserNotFoundException(data.user)
            if shopping_list.is_owner(invitee.id):
                raise DomainValidationException("Owner cannot be a collaborator", field="user")

            collaborator = await uow.list_repository.add_collaborator(
                Collaborator(
                    id=None,
                    list_id=list_id,
                    user_id=invitee.id,
                    role=CollaboratorRole(data.role),
                    accepted=False,
                    username=invitee.username,
                )
            )
        logger.info("collaborator_invited", list_id=list_id, user_id=invitee.id, role=data.role)
        return collaborator_to_dto(collaborator)

    async def remove_collaborator(self, list_id: int, collaborator_id: int, user_id: int) -> None:
        """所有者移除协作者，或协作者自己退出"""
        async with self._uow_factory() as uow:
            shopping_list = await load_list(uow, list_id)
            collaborator = await uow.list_repository.get_collaborator(list_id, collaborator_id)
            if collaborator is None:
                raise CollaboratorNotFoundException(collaborator_id)
            if not (shopping_list.is_owner(user_id) or collaborator.user_id == user_id):
                raise ListAccessDeniedException(list_id, required="owner")
            await uow.list_repository.remove_collaborator(list_id, collaborator_id)
        logger.info("collaborator_removed", list_id=list_id, collaborator_id=collaborator_id)

    async def accept_invitation(self, list_id: int, collaborator_id: int, user_id: int) -> CollaboratorDTO:
        async with self._uow_factory() as uow:
            await load_list(uow, list_id)
            collaborator = await uow.list_repository.get_collaborator(list_id, collaborator_id)
            if collaborator is None:
                raise CollaboratorNotFoundException(collaborator_id)
            if collaborator.user_id != user_id:
                raise ListAccessDeniedException(list_id, required="invitee")
            collaborator.accept()
            updated = await uow.list_repository.update_collaborator(collaborator)
        return collaborator_to_dto(updated)
