"""
用户API路由 - FastAPI表现层
"""
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm

from application.services.user_service import UserApplicationService
from core.response import success_response, Response as ApiResponse
from application.dto import UserCreateDTO, UserResponseDTO, LoginDTO, TokenDTO
from api.dependencies import get_current_user, get_user_service

router = APIRouter(
    prefix="/users",
    tags=["用户管理"]
)


@router.post(
    "/register",
    summary="用户注册",
    response_model=ApiResponse[UserResponseDTO],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    user_data: UserCreateDTO,
    service: UserApplicationService = Depends(get_user_service)
):
    """
    注册新用户

    - **username**: 用户名（3-50个字符）
    - **email**: 邮箱地址
    - **password**: 密码（至少8位）
    """
    user = await service.register_user(user_data)
    return success_response(data=user, message="User registered")


@router.post("/login", summary="用户登录", response_model=TokenDTO)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    service: UserApplicationService = Depends(get_user_service)
):
    """
    用户登录获取访问令牌

    支持用户名或邮箱登录；返回扁平结构，符合 OAuth2 密码模式的期望
    """
    return await service.login(LoginDTO(username=form_data.username, password=form_data.password))


@router.get("/me", summary="获取当前用户信息", response_model=ApiResponse[UserResponseDTO])
async def get_current_user_info(current_user: UserResponseDTO = Depends(get_current_user)):
    return success_response(data=current_user)
