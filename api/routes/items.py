"""
清单条目与分类API路由 - 修改成功后向订阅者推送事件
"""
from typing import List

from fastapi import APIRouter, Depends, status

from api.dependencies import get_current_user, get_item_service
from application.dto import (
    CategoryAssignDTO,
    CategoryListDTO,
    CategoryOrderDTO,
    ListItemCreateDTO,
    ListItemDTO,
    ListItemUpdateDTO,
    UserResponseDTO,
)
from application.services.list_item_service import ListItemApplicationService
from core.response import Response as ApiResponse, success_response

router = APIRouter(prefix="/lists/{list_id}", tags=["清单条目"])


@router.get("/items", summary="条目列表", response_model=ApiResponse[List[ListItemDTO]])
async def list_items(
    list_id: int,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ListItemApplicationService = Depends(get_item_service),
):
    return success_response(data=await service.list_items(list_id, current_user.id))


@router.post(
    "/items",
    summary="新增条目",
    response_model=ApiResponse[ListItemDTO],
    status_code=status.HTTP_201_CREATED,
)
async def create_item(
    list_id: int,
    data: ListItemCreateDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ListItemApplicationService = Depends(get_item_service),
):
    """未指定分类时沿用该清单为同名条目记住的分类；推送 item_created"""
    return success_response(data=await service.create_item(list_id, current_user.id, data))


@router.put("/items/{item_id}", summary="修改条目", response_model=ApiResponse[ListItemDTO])
async def update_item(
    list_id: int,
    item_id: int,
    data: ListItemUpdateDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ListItemApplicationService = Depends(get_item_service),
):
    """只更新请求体中出现的字段；推送 item_updated"""
    return success_response(data=await service.update_item(list_id, item_id, current_user.id, data))


@router.delete("/items/{item_id}", summary="删除条目", response_model=ApiResponse[None])
async def delete_item(
    list_id: int,
    item_id: int,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ListItemApplicationService = Depends(get_item_service),
):
    await service.delete_item(list_id, item_id, current_user.id)
    return success_response(message="Item deleted")


# -------------------- 分类 --------------------

@router.get("/categories", summary="分类列表", response_model=ApiResponse[CategoryListDTO])
async def list_categories(
    list_id: int,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ListItemApplicationService = Depends(get_item_service),
):
    return success_response(data=await service.list_categories(list_id, current_user.id))


@router.post("/categories", summary="设置条目分类", response_model=ApiResponse[CategoryAssignDTO])
async def assign_category(
    list_id: int,
    data: CategoryAssignDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ListItemApplicationService = Depends(get_item_service),
):
    """记住“条目名 -> 分类”；推送 category_updated"""
    return success_response(data=await service.assign_category(list_id, current_user.id, data))


@router.put("/categories/order", summary="分类排序", response_model=ApiResponse[List[str]])
async def reorder_categories(
    list_id: int,
    data: CategoryOrderDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ListItemApplicationService = Depends(get_item_service),
):
    return success_response(data=await service.reorder_categories(list_id, current_user.id, data))


@router.delete("/categories/{category}", summary="删除分类下全部条目", response_model=ApiResponse[dict])
async def delete_category(
    list_id: int,
    category: str,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: ListItemApplicationService = Depends(get_item_service),
):
    """分类记忆保留；每删除一个条目推送一次 item_deleted"""
    deleted = await service.delete_category(list_id, category, current_user.id)
    return success_response(data={"deletedCount": deleted})
