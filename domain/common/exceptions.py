"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class UserNotFoundException(BusinessException):
    def __init__(self, user_id: Optional[str] = None):
        details = {"user_id": user_id} if user_id else None
        super().__init__(
            code=BusinessCode.USER_NOT_FOUND,
            message="User not found",
            error_type="UserNotFound",
            details=details,
        )


class UserAlreadyExistsException(BusinessException):
    def __init__(self, email: str):
        super().__init__(
            code=BusinessCode.USER_ALREADY_EXISTS,
            message=f"Email {email} already registered",
            error_type="UserAlreadyExists",
            details={"email": email},
            field="email",
        )


class UsernameAlreadyExistsException(BusinessException):
    def __init__(self, username: str):
        super().__init__(
            code=BusinessCode.USER_ALREADY_EXISTS,
            message=f"Username {username} already exists",
            error_type="UsernameAlreadyExists",
            details={"username": username},
            field="username",
        )


class PasswordErrorException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.PASSWORD_ERROR,
            message="Invalid username or password",
            error_type="PasswordError",
        )


class UserInactiveException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message="User account is inactive",
            error_type="UserInactive",
        )


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class ListNotFoundException(BusinessException):
    def __init__(self, list_id: Optional[int] = None):
        details = {"list_id": list_id} if list_id is not None else None
        super().__init__(
            code=BusinessCode.LIST_NOT_FOUND,
            message="List not found",
            error_type="ListNotFound",
            details=details,
        )


class ListAccessDeniedException(BusinessException):
    """调用者已认证，但无权以所需角色访问该清单"""

    def __init__(self, list_id: Optional[int] = None, *, required: str = "view"):
        details = {"required": required}
        if list_id is not None:
            details["list_id"] = list_id
        super().__init__(
            code=BusinessCode.LIST_ACCESS_DENIED,
            message="Forbidden",
            error_type="ListAccessDenied",
            details=details,
        )


class ItemNotFoundException(BusinessException):
    def __init__(self, item_id: Optional[int] = None):
        details = {"item_id": item_id} if item_id is not None else None
        super().__init__(
            code=BusinessCode.ITEM_NOT_FOUND,
            message="Item not found",
            error_type="ItemNotFound",
            details=details,
        )


class RecipeNotFoundException(BusinessException):
    def __init__(self, recipe_id: Optional[int] = None):
        details = {"recipe_id": recipe_id} if recipe_id is not None else None
        super().__init__(
            code=BusinessCode.RECIPE_NOT_FOUND,
            message="Recipe not found",
            error_type="RecipeNotFound",
            details=details,
        )


class RecipeAccessDeniedException(BusinessException):
    def __init__(self, recipe_id: Optional[int] = None):
        details = {"recipe_id": recipe_id} if recipe_id is not None else None
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message="Forbidden",
            error_type="RecipeAccessDenied",
            details=details,
        )


class CollaboratorNotFoundException(BusinessException):
    def __init__(self, collaborator_id: Optional[int] = None):
        details = {"collaborator_id": collaborator_id} if collaborator_id is not None else None
        super().__init__(
            code=BusinessCode.COLLABORATOR_NOT_FOUND,
            message="Collaborator not found",
            error_type="CollaboratorNotFound",
            details=details,
        )


class CollaboratorAlreadyExistsException(BusinessException):
    def __init__(self, list_id: int, user_id: int):
        super().__init__(
            code=BusinessCode.COLLABORATOR_ALREADY_EXISTS,
            message="User is already a collaborator on this list",
            error_type="CollaboratorAlreadyExists",
            details={"list_id": list_id, "user_id": user_id},
            field="user",
        )
