"""
REST API客户端基类

提供通用的HTTP请求功能，包括：
- 只读请求自动重试（修改类请求不重试，失败交由调用方回滚）
- 状态码到异常类型的映射
- 统一响应信封 {code, message, data, error} 的解包
"""
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


@dataclass
class APIResponse:
    """API响应封装"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    raw_content: bytes
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def payload(self) -> Any:
        """返回信封中的 data 字段；非信封结构原样返回"""
        if isinstance(self.data, dict) and "code" in self.data and "data" in self.data:
            return self.data["data"]
        return self.data


class APIError(Exception):
    """API错误基类"""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
        request_id: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request_id = request_id
        super().__init__(self.message)

    def __str__(self):
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


class RateLimitError(APIError):
    """速率限制错误"""


class AuthenticationError(APIError):
    """认证/授权错误（401/403）"""


class NotFoundError(APIError):
    """资源未找到错误"""


class ServerError(APIError):
    """服务器错误"""


class RetryableAPIError(APIError):
    """可重试的API错误"""


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

ERROR_MAP = {
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
    429: RateLimitError,
    500: ServerError,
    502: ServerError,
    503: ServerError,
    504: ServerError,
}


def error_for_status(status_code: int) -> type:
    return ERROR_MAP.get(status_code, APIError)


class BaseAPIClient:
    """
    REST API客户端基类

    子类在此基础上实现具体接口；认证令牌可以固定设置，也可以通过
    token_provider 在每次请求时获取（令牌刷新后无需重建客户端）。
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API基础URL（含 /api/v1 前缀）
            timeout: 请求超时时间（秒）
            max_retries: 只读请求最大重试次数
            retry_delay: 重试退避基数（秒）
            headers: 默认请求头
            auth_token: 固定认证令牌
            token_provider: 动态获取令牌的回调，优先于 auth_token
            transport: 自定义 httpx 传输层（测试时注入 MockTransport）
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._token_provider = token_provider
        self._transport = transport

        self.default_headers = {
            "Accept": "application/json",
            "User-Agent": "ShoppingList-Client/1.0"
        }
        if headers:
            self.default_headers.update(headers)
        self._auth_token: Optional[str] = auth_token
        self._client: Optional[httpx.AsyncClient] = None

    def set_auth_token(self, token: Optional[str]) -> None:
        self._auth_token = token

    def current_token(self) -> Optional[str]:
        if self._token_provider is not None:
            return self._token_provider()
        return self._auth_token

    @property
    def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """关闭HTTP客户端"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build_url(self, endpoint: str) -> str:
        endpoint = endpoint.lstrip('/')
        return f"{self.base_url}/{endpoint}"

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {**self.default_headers}
        token = self.current_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update(extra)
        return headers

    def _raise_for_error(self, response: APIResponse) -> None:
        """处理错误响应：优先使用服务端信封中的 message"""
        message = f"API request failed with status {response.status_code}"
        if isinstance(response.data, dict):
            message = (
                response.data.get("message")
                or response.data.get("detail")
                or message
            )
        raise error_for_status(response.status_code)(
            message=message,
            status_code=response.status_code,
            response=response,
            request_id=response.request_id,
        )

    async def _send_once(self, method: str, url: str, **kwargs) -> APIResponse:
        start = time.monotonic()
        response = await self.client.request(method, url, **kwargs)
        elapsed = (time.monotonic() - start) * 1000

        response_data = None
        if "application/json" in response.headers.get("content-type", ""):
            try:
                response_data = response.json()
            except json.JSONDecodeError:
                response_data = None

        api_response = APIResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            data=response_data,
            raw_content=response.content,
            elapsed_ms=elapsed,
            request_id=response.headers.get("x-request-id"),
        )
        logger.debug("api_response %s %s -> %s (%.1fms)", method, url, api_response.status_code, elapsed)

        if api_response.is_error and api_response.status_code in RETRY_STATUS_CODES:
            raise RetryableAPIError(
                message=f"Transient API error with status {api_response.status_code}",
                status_code=api_response.status_code,
                response=api_response,
                request_id=api_response.request_id,
            )
        if api_response.is_error:
            self._raise_for_error(api_response)
        return api_response

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Union[Dict[str, Any], BaseModel]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        retry: bool = True,
    ) -> APIResponse:
        """
        发送HTTP请求

        Args:
            retry: 是否对超时/网络错误/5xx/429 重试；修改类请求应传 False

        Raises:
            APIError: 映射后的API错误
        """
        url = self._build_url(endpoint)
        if isinstance(json_data, BaseModel):
            json_data = json_data.model_dump(by_alias=True, exclude_unset=True)
        kwargs = {
            "params": params,
            "json": json_data,
            "data": data,
            "headers": self._headers(headers),
        }

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt((self.max_retries if retry else 0) + 1),
            wait=wait_exponential(
                multiplier=self.retry_delay,
                min=self.retry_delay,
                max=self.retry_delay * 8
            ),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
            before_sleep=before_sleep_log(logger, logging.WARNING)
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await self._send_once(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout after {self.timeout}s") from exc
        except httpx.TransportError as exc:
            raise APIError(f"Transport error: {exc!r}") from exc
        except RetryableAPIError as exc:
            self._raise_for_error(exc.response)
        raise APIError("Request did not complete")

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("GET", endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("POST", endpoint, **kwargs)

    async def put(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("PUT", endpoint, **kwargs)

    async def delete(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("DELETE", endpoint, **kwargs)
