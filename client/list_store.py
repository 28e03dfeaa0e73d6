"""
清单服务 REST 客户端
"""
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .api_client import BaseAPIClient, TokenProvider
from .config import ClientSettings


class ListStoreClient(BaseAPIClient):
    """清单/条目/分类接口；返回值均为解包后的 data（camelCase 字段）"""

    @classmethod
    def from_settings(
        cls,
        settings: Optional[ClientSettings] = None,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ListStoreClient":
        settings = settings or ClientSettings()
        return cls(
            base_url=settings.base_url.rstrip("/") + settings.api_prefix,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            auth_token=settings.token,
            token_provider=token_provider,
            transport=transport,
        )

    # -------------------- 认证 --------------------

    async def login(self, username: str, password: str) -> str:
        """OAuth2 密码模式登录，成功后令牌用于后续请求"""
        response = await self.post(
            "users/login",
            data={"username": username, "password": password},
            retry=False,
        )
        token = response.data["access_token"]
        self.set_auth_token(token)
        return token

    # -------------------- 清单 --------------------

    async def list_lists(self) -> List[Dict[str, Any]]:
        return (await self.get("lists")).payload()

    async def create_list(self, title: str, description: str = "") -> Dict[str, Any]:
        response = await self.post("lists", json_data={"title": title, "description": description}, retry=False)
        return response.payload()

    async def get_list(self, list_id: int) -> Dict[str, Any]:
        return (await self.get(f"lists/{list_id}")).payload()

    # -------------------- 条目 --------------------

    async def list_items(self, list_id: int) -> List[Dict[str, Any]]:
        return (await self.get(f"lists/{list_id}/items")).payload()

    async def create_item(
        self,
        list_id: int,
        name: str,
        count: int = 1,
        category: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"name": name, "count": count}
        if category is not None:
            body["category"] = category
        return (await self.post(f"lists/{list_id}/items", json_data=body, retry=False)).payload()

    async def update_item(self, list_id: int, item_id: int, **changes: Any) -> Dict[str, Any]:
        """只发送显式给出的字段，如 completed=True / category=None"""
        response = await self.put(f"lists/{list_id}/items/{item_id}", json_data=changes, retry=False)
        return response.payload()

    async def delete_item(self, list_id: int, item_id: int) -> None:
        await self.delete(f"lists/{list_id}/items/{item_id}", retry=False)

    # -------------------- 分类 --------------------

    async def list_categories(self, list_id: int) -> Dict[str, List[str]]:
        return (await self.get(f"lists/{list_id}/categories")).payload()

    async def assign_category(self, list_id: int, item_name: str, category: Optional[str]) -> Dict[str, Any]:
        response = await self.post(
            f"lists/{list_id}/categories",
            json_data={"itemName": item_name, "category": category},
            retry=False,
        )
        return response.payload()

    async def delete_category(self, list_id: int, category: str) -> int:
        response = await self.delete(f"lists/{list_id}/categories/{quote(category, safe='')}", retry=False)
        return int((response.payload() or {}).get("deletedCount", 0))
