"""
购物清单API路由 - 清单与协作者
"""
from typing import List

from fastapi import APIRouter, Depends, status

from api.dependencies import get_current_user, get_list_service
from application.dto import (
    CollaboratorDTO,
    CollaboratorInviteDTO,
    ShoppingListCreateDTO,
    ShoppingListDTO,
    ShoppingListUpdateDTO,
    UserResponseDTO,
)
from application.services.shopping_list_service import ShoppingListApplicationService
from core.response import Response as ApiResponse, success_response

router = APIRouter(prefix="/lists", tags=["购物清单"])


@router.get("", summary="我的清单", response_model=ApiResponse[List[ShoppingListDTO]])
async def list_lists(
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ShoppingListApplicationService = Depends(get_list_service),
):
    """我拥有或参与协作的全部清单"""
    return success_response(data=await service.list_lists(current_user.id))


@router.post(
    "",
    summary="创建清单",
    response_model=ApiResponse[ShoppingListDTO],
    status_code=status.HTTP_201_CREATED,
)
async def create_list(
    data: ShoppingListCreateDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ShoppingListApplicationService = Depends(get_list_service),
):
    return success_response(data=await service.create_list(current_user.id, data), message="List created")


@router.get("/{list_id}", summary="清单详情", response_model=ApiResponse[ShoppingListDTO])
async def get_list(
    list_id: int,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ShoppingListApplicationService = Depends(get_list_service),
):
    return success_response(data=await service.get_list(list_id, current_user.id))


@router.put("/{list_id}", summary="修改清单（所有者）", response_model=ApiResponse[ShoppingListDTO])
async def update_list(
    list_id: int,
    data: ShoppingListUpdateDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ShoppingListApplicationService = Depends(get_list_service),
):
    return success_response(data=await service.update_list(list_id, current_user.id, data))


@router.delete("/{list_id}", summary="删除清单（所有者）", response_model=ApiResponse[None])
async def delete_list(
    list_id: int,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ShoppingListApplicationService = Depends(get_list_service),
):
    await service.delete_list(list_id, current_user.id)
    return success_response(message="List deleted")


# -------------------- 协作者 --------------------

@router.get(
    "/{list_id}/collaborators",
    summary="协作者列表",
    response_model=ApiResponse[List[CollaboratorDTO]],
)
async def list_collaborators(
    list_id: int,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ShoppingListApplicationService = Depends(get_list_service),
):
    return success_response(data=await service.list_collaborators(list_id, current_user.id))


@router.post(
    "/{list_id}/collaborators",
    summary="邀请协作者（所有者）",
    response_model=ApiResponse[CollaboratorDTO],
    status_code=status.HTTP_201_CREATED,
)
async def invite_collaborator(
    list_id: int,
    data: CollaboratorInviteDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ShoppingListApplicationService = Depends(get_list_service),
):
    """
    按用户名或邮箱邀请

    - **user**: 用户名或邮箱
    - **role**: editor（可修改条目）或 viewer（只读）
    """
    collaborator = await service.invite_collaborator(list_id, current_user.id, data)
    return success_response(data=collaborator, message="Collaborator invited")


@router.delete(
    "/{list_id}/collaborators/{collaborator_id}",
    summary="移除协作者或退出协作",
    response_model=ApiResponse[None],
)
async def remove_collaborator(
    list_id: int,
    collaborator_id: int,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ShoppingListApplicationService = Depends(get_list_service),
):
    await service.remove_collaborator(list_id, collaborator_id, current_user.id)
    return success_response(message="Collaborator removed")


@router.post(
    "/{list_id}/collaborators/{collaborator_id}/accept",
    summary="接受邀请",
    response_model=ApiResponse[CollaboratorDTO],
)
async def accept_invitation(
    list_id: int,
    collaborator_id: int,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ShoppingListApplicationService = Depends(get_list_service),
):
    return success_response(data=await service.accept_invitation(list_id, collaborator_id, current_user.id))
