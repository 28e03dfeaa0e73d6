"""Recipe domain package."""

from .entity import Recipe, RecipeItem
from .repository import RecipeRepository

__all__ = ["Recipe", "RecipeItem", "RecipeRepository"]
