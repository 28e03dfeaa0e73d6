"""
乐观更新协调器

修改先作用于本地视图，再异步发送请求；请求失败时精确回滚本地改动，
并以 MutationFailedError 抛给调用方展示。修改类请求从不自动重试。
实时推送的事件只作为“需要刷新”的信号，收到自己修改的回声同样只是
一次幂等刷新。若请求失败前推送刷新已替换了该条目，回滚以刷新结果为准。
"""
import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .api_client import APIError
from .list_store import ListStoreClient

logger = logging.getLogger(__name__)

Item = Dict[str, Any]


@dataclass
class ListView:
    """单个清单在客户端的可观察状态"""
    list_id: int
    items: List[Item] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    error: Optional[Exception] = None

    def index_of(self, item_id: int) -> Optional[int]:
        for idx, item in enumerate(self.items):
            if item.get("id") == item_id:
                return idx
        return None

    def get(self, item_id: int) -> Item:
        idx = self.index_of(item_id)
        if idx is None:
            raise KeyError(item_id)
        return self.items[idx]


class MutationFailedError(Exception):
    """服务端拒绝了一次乐观修改；本地状态已回滚"""

    def __init__(self, operation: str, cause: Exception):
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class OptimisticMutationCoordinator:
    """对 ListView 的乐观修改 + 推送驱动的刷新"""

    def __init__(self, store: ListStoreClient, view: ListView):
        self.store = store
        self.view = view
        self._temp_ids = itertools.count(-1, -1)
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_again = False

    # -------------------- 内部工具 --------------------

    def _fail(self, operation: str, exc: Exception) -> None:
        self.view.error = exc
        logger.warning("optimistic_rollback operation=%s list_id=%s error=%s", operation, self.view.list_id, exc)
        raise MutationFailedError(operation, exc) from exc

    def _replace(self, current: Item, replacement: Item) -> bool:
        """按对象身份替换；current 已被刷新替换掉时不做任何事，以刷新结果为准"""
        for idx, item in enumerate(self.view.items):
            if item is current:
                self.view.items[idx] = replacement
                return True
        return False

    def _reinsert(self, removed: List[Tuple[int, Item]]) -> None:
        for idx, item in sorted(removed, key=lambda pair: pair[0]):
            if self.view.index_of(item.get("id")) is None:
                self.view.items.insert(min(idx, len(self.view.items)), item)

    # -------------------- 条目 --------------------

    async def add_item(self, name: str, count: int = 1, category: Optional[str] = None) -> Item:
        """先插入负数临时 id 的占位条目，成功后换成服务端返回的条目"""
        placeholder: Item = {
            "id": next(self._temp_ids),
            "listId": self.view.list_id,
            "name": name,
            "count": count,
            "completed": False,
            "category": category,
        }
        self.view.items.append(placeholder)
        try:
            created = await self.store.create_item(self.view.list_id, name, count=count, category=category)
        except Exception as exc:
            self.view.items = [i for i in self.view.items if i is not placeholder]
            self._fail("add_item", exc)

        idx = next((n for n, i in enumerate(self.view.items) if i is placeholder), None)
        if self.view.index_of(created["id"]) is not None:
            # 并发刷新已带回正式条目
            if idx is not None:
                del self.view.items[idx]
        elif idx is not None:
            self.view.items[idx] = created
        else:
            self.view.items.append(created)
        self.view.error = None
        return created

    async def toggle_item(self, item_id: int) -> Item:
        previous = self.view.get(item_id)
        tentative = {**previous, "completed": not previous.get("completed", False)}
        self._replace(previous, tentative)
        try:
            await self.store.update_item(self.view.list_id, item_id, completed=tentative["completed"])
        except Exception as exc:
            self._replace(tentative, previous)
            self._fail("toggle_item", exc)
        self.view.error = None
        return tentative

    async def delete_item(self, item_id: int) -> None:
        idx = self.view.index_of(item_id)
        if idx is None:
            raise KeyError(item_id)
        previous = self.view.items.pop(idx)
        try:
            await self.store.delete_item(self.view.list_id, item_id)
        except Exception as exc:
            self._reinsert([(idx, previous)])
            self._fail("delete_item", exc)
        self.view.error = None

    async def delete_completed(self) -> int:
        """删除全部已完成条目；失败时只恢复尚未删除成功的条目"""
        removed = [(idx, item) for idx, item in enumerate(self.view.items) if item.get("completed")]
        self.view.items = [item for item in self.view.items if not item.get("completed")]
        pending = list(removed)
        try:
            for pair in removed:
                await self.store.delete_item(self.view.list_id, pair[1]["id"])
                pending.remove(pair)
        except Exception as exc:
            self._reinsert(pending)
            self._fail("delete_completed", exc)
        self.view.error = None
        return len(removed)

    # -------------------- 分类 --------------------

    async def set_item_category(self, item_id: int, category: Optional[str]) -> Item:
        previous = self.view.get(item_id)
        previous_categories = list(self.view.categories)
        tentative = {**previous, "category": category}
        self._replace(previous, tentative)
        if category and category not in self.view.categories:
            self.view.categories = sorted(self.view.categories + [category])
        try:
            await self.store.update_item(self.view.list_id, item_id, category=category)
        except Exception as exc:
            if self._replace(tentative, previous):
                self.view.categories = previous_categories
            self._fail("set_item_category", exc)
        self.view.error = None
        return tentative

    async def delete_category(self, category: str) -> None:
        """服务端会删除该分类下的全部条目，本地同样移除"""
        previous_categories = list(self.view.categories)
        removed = [(idx, item) for idx, item in enumerate(self.view.items) if item.get("category") == category]
        self.view.categories = [c for c in self.view.categories if c != category]
        self.view.items = [item for item in self.view.items if item.get("category") != category]
        try:
            await self.store.delete_category(self.view.list_id, category)
        except Exception as exc:
            self.view.categories = previous_categories
            self._reinsert(removed)
            self._fail("delete_category", exc)
        self.view.error = None

    # -------------------- 同步 --------------------

    async def refresh(self) -> None:
        """重新拉取条目与分类（权威状态）"""
        items = await self.store.list_items(self.view.list_id)
        categories = await self.store.list_categories(self.view.list_id)
        self.view.items = list(items or [])
        self.view.categories = list((categories or {}).get("categories", []))

    def schedule_refresh(self) -> asyncio.Task:
        """合并刷新：进行中时只记一次“再刷一次”"""
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_again = True
            return self._refresh_task
        self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_loop())
        return self._refresh_task

    async def _refresh_loop(self) -> None:
        while True:
            self._refresh_again = False
            try:
                await self.refresh()
            except APIError as exc:
                self.view.error = exc
                logger.warning("refresh_failed list_id=%s error=%s", self.view.list_id, exc)
            if not self._refresh_again:
                return

    async def wait_refreshed(self) -> None:
        if self._refresh_task is not None:
            await self._refresh_task

    def handle_event(self, message: Dict[str, Any]) -> None:
        mtype = message.get("type")
        if mtype == "connected":
            return
        if mtype == "category_updated":
            category = message.get("category")
            if category and category not in self.view.categories:
                self.view.categories = sorted(self.view.categories + [category])
            return
        self.schedule_refresh()

    def attach(self, updates_client) -> Callable[[], None]:
        """订阅本清单的推送，返回取消订阅函数"""
        return updates_client.subscribe(self.view.list_id, self.handle_event)
