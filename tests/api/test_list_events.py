"""Mutating routes publish the documented list events after committing."""
import json

import pytest


class CapturingChannel:
    def __init__(self, name: str = "probe"):
        self.id = name
        self.closed = False
        self.frames = []

    def write(self, payload: str) -> None:
        self.frames.append(payload)

    def close(self) -> None:
        self.closed = True

    def messages(self) -> list:
        return [json.loads(f) for f in self.frames]


@pytest.fixture
def owner(make_user):
    return make_user("owner")


@pytest.fixture
def probe(realtime):
    channels = []

    def _attach(list_id: int) -> CapturingChannel:
        ch = CapturingChannel()
        realtime.registry.register(list_id, ch)
        channels.append((list_id, ch))
        return ch

    yield _attach
    for list_id, ch in channels:
        realtime.registry.unregister(list_id, ch)


def _create_item(client, owner, list_id, **body):
    resp = client.post(f"/api/v1/lists/{list_id}/items", json=body, headers=owner["headers"])
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_item_crud_publishes_events(client, owner, make_list, probe):
    list_id = make_list(owner)
    ch = probe(list_id)

    item = _create_item(client, owner, list_id, name="Milk", count=2)
    resp = client.put(
        f"/api/v1/lists/{list_id}/items/{item['id']}", json={"completed": True}, headers=owner["headers"]
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["completed"] is True
    resp = client.delete(f"/api/v1/lists/{list_id}/items/{item['id']}", headers=owner["headers"])
    assert resp.status_code == 200

    created, updated, deleted = ch.messages()
    assert created["type"] == "item_created"
    assert {k: created["item"][k] for k in ("id", "listId", "name", "count", "completed")} == {
        "id": item["id"], "listId": list_id, "name": "Milk", "count": 2, "completed": False,
    }
    assert updated["type"] == "item_updated"
    assert updated["item"]["completed"] is True
    assert updated["item"]["count"] == 2
    assert deleted == {"type": "item_deleted", "itemId": item["id"], "itemName": "Milk"}


def test_rejected_mutation_publishes_nothing(client, owner, make_user, make_list, probe):
    list_id = make_list(owner)
    ch = probe(list_id)
    stranger = make_user("stranger")

    resp = client.post(f"/api/v1/lists/{list_id}/items", json={"name": "Eggs"}, headers=stranger["headers"])

    assert resp.status_code == 403
    assert ch.frames == []


def test_category_is_remembered_per_item_name(client, owner, make_list, probe):
    list_id = make_list(owner)
    ch = probe(list_id)

    resp = client.post(
        f"/api/v1/lists/{list_id}/categories",
        json={"itemName": "Apples", "category": "Produce"},
        headers=owner["headers"],
    )
    assert resp.status_code == 200
    event = ch.messages()[0]
    assert event["type"] == "category_updated"
    assert event["itemName"] == "Apples"
    assert event["category"] == "Produce"
    assert event["timestamp"].endswith("Z")

    item = _create_item(client, owner, list_id, name="Apples")
    assert item["category"] == "Produce"

    categories = client.get(f"/api/v1/lists/{list_id}/categories", headers=owner["headers"]).json()["data"]
    assert categories["categories"] == ["Produce"]


def test_updating_category_remembers_it(client, owner, make_list):
    list_id = make_list(owner)
    item = _create_item(client, owner, list_id, name="Cheese")
    client.put(
        f"/api/v1/lists/{list_id}/items/{item['id']}", json={"category": "Dairy"}, headers=owner["headers"]
    )
    client.delete(f"/api/v1/lists/{list_id}/items/{item['id']}", headers=owner["headers"])

    again = _create_item(client, owner, list_id, name="Cheese")
    assert again["category"] == "Dairy"


def test_delete_category_removes_items_one_event_each(client, owner, make_list, probe):
    list_id = make_list(owner)
    a = _create_item(client, owner, list_id, name="Soap", category="Household")
    b = _create_item(client, owner, list_id, name="Sponge", category="Household")
    keep = _create_item(client, owner, list_id, name="Tea", category="Drinks")
    ch = probe(list_id)

    resp = client.delete(f"/api/v1/lists/{list_id}/categories/Household", headers=owner["headers"])

    assert resp.status_code == 200
    assert resp.json()["data"] == {"deletedCount": 2}
    events = ch.messages()
    assert [e["type"] for e in events] == ["item_deleted", "item_deleted"]
    assert {e["itemId"] for e in events} == {a["id"], b["id"]}
    remaining = client.get(f"/api/v1/lists/{list_id}/items", headers=owner["headers"]).json()["data"]
    assert [i["id"] for i in remaining] == [keep["id"]]
    # mapping survives deletion
    assert _create_item(client, owner, list_id, name="Soap")["category"] == "Household"


def test_recipe_add_to_list_publishes_items_added(client, owner, make_list, probe):
    list_id = make_list(owner)
    resp = client.post(
        "/api/v1/recipes",
        json={
            "title": "Pancakes",
            "items": [
                {"name": "Flour", "category": "Baking"},
                {"name": "Eggs", "category": "Dairy"},
                {"name": "Milk"},
            ],
        },
        headers=owner["headers"],
    )
    assert resp.status_code == 201, resp.text
    recipe_id = resp.json()["data"]["id"]
    ch = probe(list_id)

    resp = client.post(
        f"/api/v1/recipes/{recipe_id}/add-to-list",
        json={"listId": list_id, "selectedItemIds": [0, 1]},
        headers=owner["headers"],
    )

    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    assert data["itemsAdded"] == 2
    (event,) = ch.messages()
    assert event["type"] == "items_added"
    assert event["count"] == 2
    assert [i["name"] for i in event["items"]] == ["Flour", "Eggs"]
    assert all(i["recipeName"] == "Pancakes" for i in event["items"])
    assert {u["itemName"]: u["category"] for u in event["categoryUpdates"]} == {"Flour": "Baking", "Eggs": "Dairy"}


def test_viewer_can_read_but_not_edit(client, owner, make_user, make_list):
    list_id = make_list(owner)
    viewer = make_user("viewer")
    resp = client.post(
        f"/api/v1/lists/{list_id}/collaborators",
        json={"user": viewer["username"], "role": "viewer"},
        headers=owner["headers"],
    )
    assert resp.status_code == 201, resp.text

    assert client.get(f"/api/v1/lists/{list_id}/items", headers=viewer["headers"]).status_code == 200
    resp = client.post(f"/api/v1/lists/{list_id}/items", json={"name": "Jam"}, headers=viewer["headers"])
    assert resp.status_code == 403


def test_internal_broadcast_requires_shared_token(client, owner, make_list, probe):
    list_id = make_list(owner)
    ch = probe(list_id)
    body = {"listId": list_id, "message": {"type": "item_updated", "item": {"id": 1}}}

    assert client.post("/api/v1/internal/broadcast", json=body).status_code == 401
    resp = client.post(
        "/api/v1/internal/broadcast", json=body, headers={"X-Internal-Token": "internal-test-token"}
    )

    assert resp.status_code == 200
    assert ch.messages() == [body["message"]]


def test_internal_broadcast_disabled_without_token(client, monkeypatch):
    from core.config import settings

    monkeypatch.setattr(settings, "REALTIME_INTERNAL_TOKEN", None)
    resp = client.post("/api/v1/internal/broadcast", json={"listId": 1, "message": {"type": "x"}})
    assert resp.status_code == 404
