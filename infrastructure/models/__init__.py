"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .shopping_list import (
    ShoppingListModel,
    ListItemModel,
    ItemCategoryModel,
    CollaboratorModel,
)
from .recipe import RecipeModel, RecipeItemModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "ShoppingListModel",
    "ListItemModel",
    "ItemCategoryModel",
    "CollaboratorModel",
    "RecipeModel",
    "RecipeItemModel",
]
