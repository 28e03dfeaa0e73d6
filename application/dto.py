"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
import re
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_serializer
from pydantic.alias_generators import to_camel


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class CamelDTO(DTOBase):
    """清单相关 DTO：对外使用 camelCase 字段名，入参同时接受两种写法"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def to_wire(self) -> dict:
        """序列化为推送给订阅者的 JSON 结构（时间统一为 UTC-Z 字符串）"""
        return self.model_dump(by_alias=True)


# -------------------- 用户 --------------------

class UserCreateDTO(DTOBase):
    """用户创建DTO"""
    username: str = Field(..., min_length=3, max_length=50,
                          description="用户名，3-50个字符")
    email: EmailStr = Field(..., description="邮箱地址")
    password: str = Field(..., min_length=8, description="密码，至少8位")

    @field_validator('username')
    def validate_username(cls, v):
        if not re.match(r'^[a-zA-Z0-9_.-]+$', v):
            raise ValueError('用户名只能包含字母、数字、点、横线和下划线')
        return v


class UserResponseDTO(DTOBase):
    """用户响应DTO"""
    id: int
    username: str
    email: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    last_login: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LoginDTO(DTOBase):
    """登录DTO"""
    username: str = Field(..., description="用户名或邮箱")
    password: str = Field(..., description="密码")


class TokenDTO(DTOBase):
    """令牌DTO"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # 秒


# -------------------- 清单 --------------------

Role = Literal["editor", "viewer"]


class CollaboratorDTO(CamelDTO):
    id: int
    list_id: int
    user_id: int
    username: Optional[str] = None
    role: Role
    accepted: bool
    created_at: Optional[datetime] = None


class CollaboratorInviteDTO(CamelDTO):
    """邀请协作者：按用户名或邮箱"""
    user: str = Field(..., min_length=1, description="用户名或邮箱")
    role: Role = "viewer"


class ShoppingListCreateDTO(CamelDTO):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""


class ShoppingListUpdateDTO(CamelDTO):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class ShoppingListDTO(CamelDTO):
    id: int
    owner_id: int
    title: str
    description: str = ""
    category_order: List[str] = Field(default_factory=list)
    collaborators: List[CollaboratorDTO] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ListItemDTO(CamelDTO):
    """条目：推送事件与 REST 响应共用同一结构"""
    id: int
    list_id: int
    name: str
    count: int = 1
    completed: bool = False
    category: Optional[str] = None
    recipe_id: Optional[int] = None
    recipe_name: Optional[str] = None
    created_at: Optional[datetime] = None


class ListItemCreateDTO(CamelDTO):
    name: str = Field(..., min_length=1, max_length=200)
    count: int = Field(1, ge=1)
    category: Optional[str] = Field(None, max_length=100)


class ListItemUpdateDTO(CamelDTO):
    """仅更新显式提供的字段"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    count: Optional[int] = Field(None, ge=1)
    completed: Optional[bool] = None
    category: Optional[str] = Field(None, max_length=100)


class CategoryAssignDTO(CamelDTO):
    item_name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = Field(None, max_length=100)


class CategoryOrderDTO(CamelDTO):
    order: List[str] = Field(default_factory=list)


class CategoryListDTO(CamelDTO):
    categories: List[str] = Field(default_factory=list)
    order: List[str] = Field(default_factory=list)


# -------------------- 菜谱 --------------------

class RecipeItemDTO(CamelDTO):
    id: Optional[int] = None
    name: str
    category: Optional[str] = None


class RecipeItemCreateDTO(CamelDTO):
    name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = Field(None, max_length=100)


class RecipeCreateDTO(CamelDTO):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    items: List[RecipeItemCreateDTO] = Field(default_factory=list)


class RecipeUpdateDTO(CamelDTO):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class RecipeDTO(CamelDTO):
    id: int
    owner_id: int
    title: str
    description: str = ""
    items: List[RecipeItemDTO] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AddRecipeToListDTO(CamelDTO):
    list_id: int
    # 菜谱条目下标；为空表示全部
    selected_item_ids: Optional[List[int]] = None


class ItemsAddedDTO(CamelDTO):
    items_added: int
    items: List[ListItemDTO] = Field(default_factory=list)


# -------------------- 实时 --------------------

class InternalBroadcastDTO(CamelDTO):
    list_id: int
    message: dict

    @field_validator("message")
    def validate_message_type(cls, v):
        if not isinstance(v.get("type"), str) or not v["type"]:
            raise ValueError("message.type is required")
        return v
