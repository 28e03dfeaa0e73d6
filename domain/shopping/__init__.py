"""Shopping list domain package."""

from .entity import (
    CollaboratorRole,
    Collaborator,
    ItemCategory,
    ListItem,
    ShoppingList,
)
from .repository import ShoppingListRepository, ListItemRepository

__all__ = [
    "CollaboratorRole",
    "Collaborator",
    "ItemCategory",
    "ListItem",
    "ShoppingList",
    "ShoppingListRepository",
    "ListItemRepository",
]
