import asyncio

import httpx
import pytest

from client.api_client import APIError, ServerError
from client.list_store import ListStoreClient
from client.optimistic import ListView, MutationFailedError, OptimisticMutationCoordinator


class FakeStore:
    """记录调用的清单服务替身，fail 中列出的操作抛出 APIError"""

    def __init__(self, items=None, categories=None):
        self.items = [dict(i) for i in (items or [])]
        self.categories = list(categories or [])
        self.fail = set()
        self.fail_on_delete = set()
        self.calls = []
        self.next_id = 42

    def _maybe_fail(self, op):
        if op in self.fail:
            raise APIError("rejected", status_code=403)

    async def create_item(self, list_id, name, count=1, category=None):
        self.calls.append(("create_item", name))
        self._maybe_fail("create_item")
        item = {"id": self.next_id, "listId": list_id, "name": name, "count": count,
                "completed": False, "category": category}
        self.items.append(item)
        return dict(item)

    async def update_item(self, list_id, item_id, **changes):
        self.calls.append(("update_item", item_id, changes))
        self._maybe_fail("update_item")
        return {"id": item_id, **changes}

    async def delete_item(self, list_id, item_id):
        self.calls.append(("delete_item", item_id))
        if item_id in self.fail_on_delete:
            raise APIError("rejected", status_code=500)
        self._maybe_fail("delete_item")

    async def delete_category(self, list_id, category):
        self.calls.append(("delete_category", category))
        self._maybe_fail("delete_category")
        return 1

    async def list_items(self, list_id):
        self.calls.append(("list_items",))
        self._maybe_fail("list_items")
        return [dict(i) for i in self.items]

    async def list_categories(self, list_id):
        self.calls.append(("list_categories",))
        return {"categories": list(self.categories)}


def _item(item_id, name, completed=False, category=None):
    return {"id": item_id, "listId": 1, "name": name, "count": 1, "completed": completed, "category": category}


@pytest.fixture
def view():
    return ListView(
        list_id=1,
        items=[_item(1, "Bread"), _item(2, "Eggs", completed=True, category="Dairy"), _item(3, "Jam")],
        categories=["Dairy"],
    )


@pytest.mark.asyncio
async def test_toggle_rollback_restores_exact_state(view):
    store = FakeStore()
    store.fail.add("update_item")
    coordinator = OptimisticMutationCoordinator(store, view)
    before = list(view.items)

    with pytest.raises(MutationFailedError) as exc_info:
        await coordinator.toggle_item(2)

    assert exc_info.value.operation == "toggle_item"
    assert view.items == before
    assert all(a is b for a, b in zip(view.items, before))
    assert view.error is exc_info.value.cause


@pytest.mark.asyncio
async def test_toggle_success_keeps_tentative_state(view):
    store = FakeStore()
    coordinator = OptimisticMutationCoordinator(store, view)

    await coordinator.toggle_item(1)

    assert view.get(1)["completed"] is True
    assert store.calls == [("update_item", 1, {"completed": True})]
    assert view.error is None


@pytest.mark.asyncio
async def test_add_item_replaces_placeholder_with_server_entry(view):
    store = FakeStore()
    coordinator = OptimisticMutationCoordinator(store, view)

    created = await coordinator.add_item("Milk")

    milk = [i for i in view.items if i["name"] == "Milk"]
    assert len(milk) == 1
    assert milk[0]["id"] == 42
    assert created["completed"] is False
    assert all(i["id"] > 0 for i in view.items)


@pytest.mark.asyncio
async def test_add_item_placeholder_visible_while_pending(view):
    gate = asyncio.Event()
    store = FakeStore()
    original_create = store.create_item

    async def slow_create(*args, **kwargs):
        await gate.wait()
        return await original_create(*args, **kwargs)

    store.create_item = slow_create
    coordinator = OptimisticMutationCoordinator(store, view)

    task = asyncio.create_task(coordinator.add_item("Milk"))
    await asyncio.sleep(0)
    placeholder = view.items[-1]
    assert placeholder["name"] == "Milk"
    assert placeholder["id"] < 0

    gate.set()
    await task
    assert [i["id"] for i in view.items if i["name"] == "Milk"] == [42]


@pytest.mark.asyncio
async def test_add_item_when_refresh_already_brought_canonical_entry(view):
    gate = asyncio.Event()
    store = FakeStore(items=view.items)
    original_create = store.create_item

    async def slow_create(*args, **kwargs):
        created = await original_create(*args, **kwargs)
        await gate.wait()
        return created

    store.create_item = slow_create
    coordinator = OptimisticMutationCoordinator(store, view)

    task = asyncio.create_task(coordinator.add_item("Milk"))
    await asyncio.sleep(0)
    # 推送的 item_created 先于 POST 响应到达
    coordinator.handle_event({"type": "item_created", "item": {"id": 42}})
    await coordinator.wait_refreshed()
    gate.set()
    await task

    assert [i["id"] for i in view.items if i["name"] == "Milk"] == [42]


@pytest.mark.asyncio
async def test_add_item_failure_removes_placeholder(view):
    store = FakeStore()
    store.fail.add("create_item")
    coordinator = OptimisticMutationCoordinator(store, view)
    before = list(view.items)

    with pytest.raises(MutationFailedError):
        await coordinator.add_item("Milk")

    assert view.items == before


@pytest.mark.asyncio
async def test_delete_item_rollback_restores_position(view):
    store = FakeStore()
    store.fail.add("delete_item")
    coordinator = OptimisticMutationCoordinator(store, view)

    with pytest.raises(MutationFailedError):
        await coordinator.delete_item(2)

    assert [i["id"] for i in view.items] == [1, 2, 3]


@pytest.mark.asyncio
async def test_delete_completed_restores_only_failed_items():
    view = ListView(list_id=1, items=[
        _item(1, "Bread", completed=True),
        _item(2, "Eggs"),
        _item(3, "Jam", completed=True),
        _item(4, "Tea", completed=True),
    ])
    store = FakeStore()
    store.fail_on_delete.add(3)
    coordinator = OptimisticMutationCoordinator(store, view)

    with pytest.raises(MutationFailedError):
        await coordinator.delete_completed()

    assert [i["id"] for i in view.items] == [2, 3, 4]
    assert ("delete_item", 1) in store.calls


@pytest.mark.asyncio
async def test_delete_completed_success_counts(view):
    store = FakeStore()
    coordinator = OptimisticMutationCoordinator(store, view)

    assert await coordinator.delete_completed() == 1
    assert [i["id"] for i in view.items] == [1, 3]


@pytest.mark.asyncio
async def test_set_item_category_rollback(view):
    store = FakeStore()
    store.fail.add("update_item")
    coordinator = OptimisticMutationCoordinator(store, view)

    with pytest.raises(MutationFailedError):
        await coordinator.set_item_category(1, "Bakery")

    assert view.get(1)["category"] is None
    assert view.categories == ["Dairy"]


@pytest.mark.asyncio
async def test_set_item_category_adds_category(view):
    coordinator = OptimisticMutationCoordinator(FakeStore(), view)

    await coordinator.set_item_category(1, "Bakery")

    assert view.get(1)["category"] == "Bakery"
    assert view.categories == ["Bakery", "Dairy"]


@pytest.mark.asyncio
async def test_delete_category_removes_and_restores(view):
    store = FakeStore()
    coordinator = OptimisticMutationCoordinator(store, view)
    await coordinator.delete_category("Dairy")
    assert view.categories == []
    assert [i["id"] for i in view.items] == [1, 3]

    failing = ListView(list_id=1, items=[_item(1, "Bread"), _item(2, "Eggs", category="Dairy")],
                       categories=["Dairy"])
    store.fail.add("delete_category")
    coordinator = OptimisticMutationCoordinator(store, failing)
    with pytest.raises(MutationFailedError):
        await coordinator.delete_category("Dairy")
    assert failing.categories == ["Dairy"]
    assert [i["id"] for i in failing.items] == [1, 2]


@pytest.mark.asyncio
async def test_handle_event_routing(view):
    store = FakeStore(items=[_item(9, "Fresh")], categories=["Dairy", "Fruit"])
    coordinator = OptimisticMutationCoordinator(store, view)

    coordinator.handle_event({"type": "connected", "listId": 1})
    assert store.calls == []

    coordinator.handle_event({"type": "category_updated", "itemName": "apple", "category": "Bakery"})
    assert view.categories == ["Bakery", "Dairy"]
    assert store.calls == []

    coordinator.handle_event({"type": "item_deleted", "itemId": 1})
    coordinator.handle_event({"type": "item_updated", "item": {"id": 3}})
    await coordinator.wait_refreshed()

    assert [i["id"] for i in view.items] == [9]
    assert view.categories == ["Dairy", "Fruit"]
    assert store.calls.count(("list_items",)) <= 2


@pytest.mark.asyncio
async def test_refresh_failure_sets_error(view):
    store = FakeStore()
    store.fail.add("list_items")
    coordinator = OptimisticMutationCoordinator(store, view)

    coordinator.schedule_refresh()
    await coordinator.wait_refreshed()

    assert isinstance(view.error, APIError)


@pytest.mark.asyncio
async def test_attach_subscribes_handler(view):
    class Updates:
        def __init__(self):
            self.subscribed = []

        def subscribe(self, list_id, callback):
            self.subscribed.append((list_id, callback))
            return lambda: self.subscribed.clear()

    updates = Updates()
    coordinator = OptimisticMutationCoordinator(FakeStore(), view)

    dispose = coordinator.attach(updates)

    assert updates.subscribed == [(1, coordinator.handle_event)]
    dispose()
    assert updates.subscribed == []


@pytest.mark.asyncio
async def test_list_store_unwraps_envelope_and_never_retries_mutations():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path))
        if request.method == "GET":
            body = {"code": 0, "message": "success", "data": [{"id": 1, "name": "Bread"}], "error": None}
            return httpx.Response(200, json=body)
        return httpx.Response(503, json={"code": 50001, "message": "unavailable", "data": None})

    store = ListStoreClient(
        base_url="http://testserver/api/v1",
        retry_delay=0.001,
        transport=httpx.MockTransport(handler),
    )
    async with store:
        assert await store.list_items(1) == [{"id": 1, "name": "Bread"}]
        with pytest.raises(ServerError) as exc_info:
            await store.create_item(1, "Milk")

    assert exc_info.value.message == "unavailable"
    assert calls == [("GET", "/api/v1/lists/1/items"), ("POST", "/api/v1/lists/1/items")]


@pytest.mark.asyncio
async def test_list_store_retries_reads():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(502)
        return httpx.Response(200, json={"code": 0, "message": "success", "data": {"categories": ["Dairy"]}})

    store = ListStoreClient(
        base_url="http://testserver/api/v1",
        retry_delay=0.001,
        transport=httpx.MockTransport(handler),
    )
    async with store:
        assert await store.list_categories(5) == {"categories": ["Dairy"]}
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_list_store_delete_category_quotes_name():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.raw_path)
        return httpx.Response(200, json={"code": 0, "message": "success", "data": {"deletedCount": 2}})

    store = ListStoreClient(base_url="http://testserver/api/v1", transport=httpx.MockTransport(handler))
    async with store:
        assert await store.delete_category(1, "Fruit & Veg") == 2
    assert seen == [b"/api/v1/lists/1/categories/Fruit%20%26%20Veg"]


@pytest.mark.asyncio
async def test_dropped_connection_rolls_back_toggle(view):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.RemoteProtocolError("Server disconnected without sending a response.", request=request)

    store = ListStoreClient(base_url="http://testserver/api/v1", transport=httpx.MockTransport(handler))
    coordinator = OptimisticMutationCoordinator(store, view)
    before = list(view.items)

    async with store:
        with pytest.raises(MutationFailedError) as exc_info:
            await coordinator.toggle_item(1)

    assert view.items == before
    assert view.get(1)["completed"] is False
    assert isinstance(exc_info.value.cause, APIError)
    assert isinstance(exc_info.value.cause.__cause__, httpx.RemoteProtocolError)


@pytest.mark.asyncio
async def test_unexpected_store_error_still_rolls_back(view):
    store = FakeStore()

    async def broken_delete(list_id, item_id):
        raise RuntimeError("serializer blew up")

    store.delete_item = broken_delete
    coordinator = OptimisticMutationCoordinator(store, view)

    with pytest.raises(MutationFailedError) as exc_info:
        await coordinator.delete_item(3)

    assert [i["id"] for i in view.items] == [1, 2, 3]
    assert isinstance(exc_info.value.cause, RuntimeError)


@pytest.mark.asyncio
async def test_failed_toggle_keeps_state_from_refresh_in_flight(view):
    gate = asyncio.Event()
    server_item = _item(1, "Bread", completed=True)
    store = FakeStore(items=[server_item, _item(3, "Jam")])

    async def slow_failing_update(list_id, item_id, **changes):
        await gate.wait()
        raise APIError("rejected", status_code=409)

    store.update_item = slow_failing_update
    coordinator = OptimisticMutationCoordinator(store, view)

    task = asyncio.create_task(coordinator.toggle_item(1))
    await asyncio.sleep(0)
    # 另一位协作者的修改触发刷新，先于失败响应到达
    coordinator.handle_event({"type": "item_updated", "item": {"id": 1}})
    await coordinator.wait_refreshed()
    gate.set()

    with pytest.raises(MutationFailedError):
        await task

    assert view.items == [server_item, _item(3, "Jam")]


@pytest.mark.asyncio
async def test_transport_errors_are_wrapped_as_api_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.UnsupportedProtocol("Request URL has an unsupported protocol", request=request)

    store = ListStoreClient(base_url="http://testserver/api/v1", transport=httpx.MockTransport(handler))
    async with store:
        with pytest.raises(APIError) as exc_info:
            await store.create_item(1, "Milk")

    assert isinstance(exc_info.value.__cause__, httpx.UnsupportedProtocol)
