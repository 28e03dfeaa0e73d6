"""
菜谱API路由
"""
from typing import List

from fastapi import APIRouter, Depends, status

from api.dependencies import get_current_user, get_recipe_service
from application.dto import (
    AddRecipeToListDTO,
    ItemsAddedDTO,
    RecipeCreateDTO,
    RecipeDTO,
    RecipeItemCreateDTO,
    RecipeItemDTO,
    RecipeUpdateDTO,
    UserResponseDTO,
)
from application.services.recipe_service import RecipeApplicationService
from core.response import Response as ApiResponse, success_response

router = APIRouter(prefix="/recipes", tags=["菜谱"])


@router.get("", summary="我的菜谱", response_model=ApiResponse[List[RecipeDTO]])
async def list_recipes(
    current_user: UserResponseDTO = Depends(get_current_user),
    service: RecipeApplicationService = Depends(get_recipe_service),
):
    return success_response(data=await service.list_recipes(current_user.id))


@router.post(
    "",
    summary="创建菜谱",
    response_model=ApiResponse[RecipeDTO],
    status_code=status.HTTP_201_CREATED,
)
async def create_recipe(
    data: RecipeCreateDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: RecipeApplicationService = Depends(get_recipe_service),
):
    return success_response(data=await service.create_recipe(current_user.id, data), message="Recipe created")


@router.get("/{recipe_id}", summary="菜谱详情", response_model=ApiResponse[RecipeDTO])
async def get_recipe(
    recipe_id: int,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: RecipeApplicationService = Depends(get_recipe_service),
):
    return success_response(data=await service.get_recipe(recipe_id, current_user.id))


@router.put("/{recipe_id}", summary="修改菜谱", response_model=ApiResponse[RecipeDTO])
async def update_recipe(
    recipe_id: int,
    data: RecipeUpdateDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: RecipeApplicationService = Depends(get_recipe_service),
):
    return success_response(data=await service.update_recipe(recipe_id, current_user.id, data))


@router.delete("/{recipe_id}", summary="删除菜谱", response_model=ApiResponse[None])
async def delete_recipe(
    recipe_id: int,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: RecipeApplicationService = Depends(get_recipe_service),
):
    await service.delete_recipe(recipe_id, current_user.id)
    return success_response(message="Recipe deleted")


@router.post(
    "/{recipe_id}/items",
    summary="添加菜谱食材",
    response_model=ApiResponse[RecipeItemDTO],
    status_code=status.HTTP_201_CREATED,
)
async def add_recipe_item(
    recipe_id: int,
    data: RecipeItemCreateDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: RecipeApplicationService = Depends(get_recipe_service),
):
    return success_response(data=await service.add_recipe_item(recipe_id, current_user.id, data))


@router.delete("/{recipe_id}/items/{item_id}", summary="删除菜谱食材", response_model=ApiResponse[None])
async def remove_recipe_item(
    recipe_id: int,
    item_id: int,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: RecipeApplicationService = Depends(get_recipe_service),
):
    await service.remove_recipe_item(recipe_id, item_id, current_user.id)
    return success_response(message="Recipe item removed")


@router.post(
    "/{recipe_id}/add-to-list",
    summary="将菜谱食材加入清单",
    response_model=ApiResponse[ItemsAddedDTO],
    status_code=status.HTTP_201_CREATED,
)
async def add_recipe_to_list(
    recipe_id: int,
    data: AddRecipeToListDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: RecipeApplicationService = Depends(get_recipe_service),
):
    """
    - **listId**: 目标清单（需要编辑权限）
    - **selectedItemIds**: 食材下标；为空时加入全部食材

    成功后向清单订阅者推送一次 items_added
    """
    return success_response(data=await service.add_to_list(recipe_id, current_user.id, data))
