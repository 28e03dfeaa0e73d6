"""
Request ID 中间件
用于生成或透传追踪ID，并通过contextvars传递给日志系统
"""
import uuid
from contextvars import ContextVar
from typing import Optional

import structlog
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
client_ip_var: ContextVar[Optional[str]] = ContextVar("client_ip", default=None)


class RequestIDMiddleware:
    """
    Request ID 追踪中间件（纯 ASGI，SSE 长连接与 WebSocket 同样适用）

    功能：
    1. 从请求头获取或生成新的request_id
    2. 将request_id存入contextvars与scope["state"]，供日志系统和异常处理器使用
    3. 在HTTP响应头中返回request_id
    """

    HEADER_NAME = "X-Request-ID"

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        request_id = headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = self._get_client_ip(scope, headers)

        state = scope.setdefault("state", {})
        state["request_id"] = request_id
        state["client_ip"] = client_ip

        request_id_var.set(request_id)
        client_ip_var.set(client_ip)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            path=scope.get("path"),
        )

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[self.HEADER_NAME] = request_id
            await send(message)

        await self.app(scope, receive, send_wrapper)

    @staticmethod
    def _get_client_ip(scope: Scope, headers: Headers) -> str:
        """获取客户端真实IP（考虑代理）"""
        x_forwarded_for = headers.get("X-Forwarded-For")
        if x_forwarded_for:
            return x_forwarded_for.split(",")[0].strip()
        real_ip = headers.get("X-Real-IP")
        if real_ip:
            return real_ip
        client = scope.get("client")
        return client[0] if client else "unknown"


def get_request_id() -> Optional[str]:
    """获取当前请求的request_id"""
    return request_id_var.get()


def get_client_ip() -> Optional[str]:
    """获取当前请求的客户端IP"""
    return client_ip_var.get()
