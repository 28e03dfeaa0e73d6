import pytest

from domain.common.exceptions import DomainValidationException, ListAccessDeniedException, RecipeAccessDeniedException
from domain.recipe.entity import Recipe, RecipeItem
from domain.shopping.entity import Collaborator, CollaboratorRole, ListItem, ShoppingList
from shared.codes import BusinessCode


def _list_with_collaborators():
    return ShoppingList(
        id=1,
        owner_id=10,
        title="Groceries",
        collaborators=[
            Collaborator(id=1, list_id=1, user_id=20, role=CollaboratorRole.EDITOR, accepted=True),
            Collaborator(id=2, list_id=1, user_id=30, role=CollaboratorRole.VIEWER),
        ],
    )


@pytest.mark.parametrize(
    "user_id, can_view, can_edit",
    [(10, True, True), (20, True, True), (30, True, False), (40, False, False)],
)
def test_access_rules(user_id, can_view, can_edit):
    shopping_list = _list_with_collaborators()
    assert shopping_list.can_view(user_id) is can_view
    assert shopping_list.can_edit(user_id) is can_edit


def test_ensure_helpers_raise_access_denied():
    shopping_list = _list_with_collaborators()

    with pytest.raises(ListAccessDeniedException) as exc_info:
        shopping_list.ensure_can_edit(30)
    assert exc_info.value.code == BusinessCode.LIST_ACCESS_DENIED
    assert exc_info.value.details["required"] == "edit"

    with pytest.raises(ListAccessDeniedException):
        shopping_list.ensure_owner(20)
    shopping_list.ensure_can_view(30)
    shopping_list.ensure_owner(10)


def test_title_is_required_and_trimmed():
    assert ShoppingList(id=None, owner_id=1, title="  Weekend  ").title == "Weekend"
    with pytest.raises(DomainValidationException):
        ShoppingList(id=None, owner_id=1, title="   ")

    shopping_list = ShoppingList(id=None, owner_id=1, title="Weekend")
    with pytest.raises(DomainValidationException):
        shopping_list.rename(title=" ")
    shopping_list.rename(description="for the party")
    assert shopping_list.title == "Weekend"
    assert shopping_list.description == "for the party"
    assert shopping_list.updated_at is not None


def test_reorder_categories_drops_duplicates_and_blanks():
    shopping_list = ShoppingList(id=1, owner_id=1, title="Groceries")
    shopping_list.reorder_categories(["Dairy", "", "Fruit", "Dairy", "Bakery"])
    assert shopping_list.category_order == ["Dairy", "Fruit", "Bakery"]


def test_list_item_validation():
    item = ListItem(id=None, list_id=1, name="  Milk ")
    assert item.name == "Milk"
    assert item.count == 1
    assert item.completed is False

    with pytest.raises(DomainValidationException):
        ListItem(id=None, list_id=1, name="")
    with pytest.raises(DomainValidationException):
        ListItem(id=None, list_id=1, name="Milk", count=0)


def test_recipe_select_items():
    recipe = Recipe(
        id=1,
        owner_id=10,
        title="Pancakes",
        items=[
            RecipeItem(id=1, recipe_id=1, name="Flour"),
            RecipeItem(id=2, recipe_id=1, name="Eggs", category="Dairy"),
            RecipeItem(id=3, recipe_id=1, name="Milk", category="Dairy"),
        ],
    )
    assert [i.name for i in recipe.select_items()] == ["Flour", "Eggs", "Milk"]
    assert [i.name for i in recipe.select_items([])] == ["Flour", "Eggs", "Milk"]
    assert [i.name for i in recipe.select_items([2, 0, 9])] == ["Flour", "Milk"]

    with pytest.raises(RecipeAccessDeniedException):
        recipe.ensure_owner(11)
