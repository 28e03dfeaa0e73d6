import pytest
from starlette.websockets import WebSocketDisconnect

from shared.codes import BusinessCode


def test_missing_token_closes_with_policy_violation(client, realtime):
    with client.websocket_connect("/api/v1/ws") as ws:
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_text()
    assert exc.value.code == 1008
    assert exc.value.reason == "Token required"
    assert len(realtime.connections) == 0


def test_invalid_token_closes_with_policy_violation(client, realtime):
    with client.websocket_connect("/api/v1/ws?token=garbage") as ws:
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_text()
    assert exc.value.code == 1008
    assert exc.value.reason == "Invalid token"
    assert len(realtime.registry) == 0


def test_subscribe_receives_item_events_and_cleans_up(client, realtime, make_user, make_list):
    owner = make_user("owner")
    list_id = make_list(owner)

    with client.websocket_connect(f"/api/v1/ws?token={owner['token']}") as ws:
        assert ws.receive_json() == {"type": "connected", "userId": owner["id"]}

        ws.send_json({"type": "subscribe", "listId": list_id})
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        assert list_id in realtime.registry

        resp = client.post(f"/api/v1/lists/{list_id}/items", json={"name": "Bread"}, headers=owner["headers"])
        assert resp.status_code == 201

        event = ws.receive_json()
        assert event["type"] == "item_created"
        assert event["item"]["name"] == "Bread"
        assert event["item"]["listId"] == list_id

        ws.send_json({"type": "unsubscribe", "listId": list_id})
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        assert list_id not in realtime.registry

        ws.send_json({"type": "subscribe", "listId": list_id})
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}

    assert list_id not in realtime.registry
    assert owner["id"] not in realtime.connections.user_ids()


def test_header_token_is_accepted(client, make_user):
    user = make_user()
    with client.websocket_connect("/api/v1/ws", headers=user["headers"]) as ws:
        assert ws.receive_json()["userId"] == user["id"]


def test_subscribe_to_foreign_list_sends_error_and_keeps_socket(client, realtime, make_user, make_list):
    owner, stranger = make_user("owner"), make_user("stranger")
    list_id = make_list(owner)

    with client.websocket_connect(f"/api/v1/ws?token={stranger['token']}") as ws:
        ws.receive_json()
        ws.send_json({"type": "subscribe", "listId": list_id})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["code"] == BusinessCode.LIST_ACCESS_DENIED
        assert error["listId"] == list_id
        assert list_id not in realtime.registry

        ws.send_json({"type": "subscribe", "listId": 999999})
        assert ws.receive_json()["code"] == BusinessCode.LIST_NOT_FOUND

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_unknown_and_malformed_messages(client, make_user):
    user = make_user()
    with client.websocket_connect(f"/api/v1/ws?token={user['token']}") as ws:
        ws.receive_json()
        ws.send_text("{not json")
        ws.send_json({"type": "dance"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["message"] == "Unknown message type"

        ws.send_json({"type": "subscribe"})
        assert ws.receive_json()["message"] == "listId is required"


def test_multiple_sockets_per_user(client, realtime, make_user):
    user = make_user()
    with client.websocket_connect(f"/api/v1/ws?token={user['token']}") as ws1:
        ws1.receive_json()
        with client.websocket_connect(f"/api/v1/ws?token={user['token']}") as ws2:
            ws2.receive_json()
            assert len(realtime.connections.channels_for_user(user["id"])) == 2
        ws1.send_json({"type": "ping"})
        assert ws1.receive_json() == {"type": "pong"}
        assert len(realtime.connections.channels_for_user(user["id"])) == 1
    assert realtime.connections.channels_for_user(user["id"]) == []
