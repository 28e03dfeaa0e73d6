import pytest


def test_register_login_and_me(client, make_user):
    user = make_user()
    resp = client.get("/api/v1/users/me", headers=user["headers"])
    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    assert body["data"]["username"] == user["username"]


def test_wrong_password_is_rejected(client, make_user):
    user = make_user()
    resp = client.post("/api/v1/users/login", data={"username": user["username"], "password": "wrong-pass"})
    assert resp.status_code == 401
    assert resp.json()["error"]["type"]


def test_lists_are_visible_to_owner_and_collaborators_only(client, make_user, make_list):
    owner, friend, stranger = make_user("owner"), make_user("friend"), make_user("stranger")
    list_id = make_list(owner, "Party")

    resp = client.post(
        f"/api/v1/lists/{list_id}/collaborators",
        json={"user": f"{friend['username']}@example.com", "role": "editor"},
        headers=owner["headers"],
    )
    assert resp.status_code == 201, resp.text
    collaborator = resp.json()["data"]
    assert collaborator["accepted"] is False
    assert collaborator["role"] == "editor"

    assert list_id in [l["id"] for l in client.get("/api/v1/lists", headers=friend["headers"]).json()["data"]]
    assert client.get(f"/api/v1/lists/{list_id}", headers=stranger["headers"]).status_code == 403

    resp = client.post(
        f"/api/v1/lists/{list_id}/collaborators/{collaborator['id']}/accept", headers=friend["headers"]
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["accepted"] is True

    # editor may add items, but not rename the list
    assert client.post(
        f"/api/v1/lists/{list_id}/items", json={"name": "Chips"}, headers=friend["headers"]
    ).status_code == 201
    assert client.put(
        f"/api/v1/lists/{list_id}", json={"title": "Mine"}, headers=friend["headers"]
    ).status_code == 403


def test_duplicate_invitation_conflicts(client, make_user, make_list):
    owner, friend = make_user("owner"), make_user("friend")
    list_id = make_list(owner)
    body = {"user": friend["username"], "role": "viewer"}
    assert client.post(f"/api/v1/lists/{list_id}/collaborators", json=body, headers=owner["headers"]).status_code == 201
    assert client.post(f"/api/v1/lists/{list_id}/collaborators", json=body, headers=owner["headers"]).status_code == 409


def test_collaborator_can_leave(client, make_user, make_list):
    owner, friend = make_user("owner"), make_user("friend")
    list_id = make_list(owner)
    cid = client.post(
        f"/api/v1/lists/{list_id}/collaborators",
        json={"user": friend["username"]},
        headers=owner["headers"],
    ).json()["data"]["id"]

    resp = client.delete(f"/api/v1/lists/{list_id}/collaborators/{cid}", headers=friend["headers"])

    assert resp.status_code == 200
    assert client.get(f"/api/v1/lists/{list_id}", headers=friend["headers"]).status_code == 403


def test_owner_deletes_list(client, make_user, make_list):
    owner = make_user("owner")
    list_id = make_list(owner)
    client.post(f"/api/v1/lists/{list_id}/items", json={"name": "Rice"}, headers=owner["headers"])

    assert client.delete(f"/api/v1/lists/{list_id}", headers=owner["headers"]).status_code == 200
    assert client.get(f"/api/v1/lists/{list_id}", headers=owner["headers"]).status_code == 404


def test_category_order_is_stored(client, make_user, make_list):
    owner = make_user("owner")
    list_id = make_list(owner)
    resp = client.put(
        f"/api/v1/lists/{list_id}/categories/order",
        json={"order": ["Produce", "Dairy", "Produce"]},
        headers=owner["headers"],
    )
    assert resp.status_code == 200
    assert resp.json()["data"] == ["Produce", "Dairy"]
    categories = client.get(f"/api/v1/lists/{list_id}/categories", headers=owner["headers"]).json()["data"]
    assert categories["order"] == ["Produce", "Dairy"]


@pytest.mark.filterwarnings("error::sqlalchemy.exc.SAWarning")
def test_categories_merge_item_and_remembered_names(client, make_user, make_list):
    owner = make_user("owner")
    list_id = make_list(owner)
    for name, category in (("Milk", "Dairy"), ("Yogurt", "Dairy"), ("Apples", None)):
        body = {"name": name} if category is None else {"name": name, "category": category}
        assert client.post(f"/api/v1/lists/{list_id}/items", json=body, headers=owner["headers"]).status_code == 201
    client.post(
        f"/api/v1/lists/{list_id}/categories",
        json={"itemName": "Bread", "category": "Bakery"},
        headers=owner["headers"],
    )

    resp = client.get(f"/api/v1/lists/{list_id}/categories", headers=owner["headers"])

    assert resp.status_code == 200
    assert resp.json()["data"]["categories"] == ["Bakery", "Dairy"]
