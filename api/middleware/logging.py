"""
请求/响应日志中间件
记录HTTP请求和响应（含耗时）；对事件流只记录建立连接与结束
"""
import json
import time
from typing import Any, List
from urllib.parse import parse_qs

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class LoggingMiddleware:
    """
    日志记录中间件（纯 ASGI）

    功能：
    1. 记录请求信息（方法、路径、参数等）
    2. 记录响应状态码与首包耗时
    3. 按开关记录请求体（截断并脱敏）
    """

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    SENSITIVE_FIELDS = {"password", "token", "secret", "api_key", "access_token"}

    def __init__(self, app: ASGIApp):
        self.app = app
        self.enable_body_log_default: bool = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT
        self.max_body_log_bytes: int = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] in self.SKIP_PATHS:
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        headers = Headers(scope=scope)
        request_info = {
            "method": scope["method"],
            "path": scope["path"],
        }
        query = scope.get("query_string", b"").decode("latin-1")
        if query:
            request_info["query_params"] = self._sanitize_data(
                {k: v if len(v) > 1 else v[0] for k, v in parse_qs(query).items()}
            )
        user_agent = headers.get("user-agent")
        if user_agent:
            request_info["user_agent"] = user_agent

        capture_body = scope["method"] in ("POST", "PUT", "PATCH") and self._should_log_body(headers)
        body_chunks: List[bytes] = []
        captured = 0

        async def receive_wrapper() -> Message:
            nonlocal captured
            message = await receive()
            if capture_body and message["type"] == "http.request" and captured < self.max_body_log_bytes:
                chunk = message.get("body", b"")[: self.max_body_log_bytes - captured]
                body_chunks.append(chunk)
                captured += len(chunk)
            return message

        status_holder = {"status": 500}

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                duration = time.time() - start_time
                status_holder["status"] = message["status"]
                MutableHeaders(scope=message)["X-Process-Time"] = f"{duration:.3f}"
                log_data = {"status_code": message["status"], "duration": duration, **request_info}
                if body_chunks:
                    log_data["body"] = self._parse_body(b"".join(body_chunks), headers)
                self._log_response(log_data)
            await send(message)

        logger.info("request_started", **request_info)
        try:
            await self.app(scope, receive_wrapper, send_wrapper)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=time.time() - start_time,
                error=str(exc),
                error_type=type(exc).__name__,
                **request_info,
                exc_info=True,
            )
            raise

    def _should_log_body(self, headers: Headers) -> bool:
        # X-Log-Body: true/false 可覆盖默认行为
        header = (headers.get("X-Log-Body") or "").lower()
        if header in {"true", "1", "yes"}:
            return True
        if header in {"false", "0", "no"}:
            return False
        return bool(self.enable_body_log_default and settings.DEBUG)

    def _parse_body(self, snippet: bytes, headers: Headers) -> Any:
        content_type = headers.get("content-type", "").lower()
        text = snippet.decode("utf-8", errors="ignore")
        if "application/json" in content_type:
            try:
                return self._sanitize_data(json.loads(text))
            except ValueError:
                return text
        if "application/x-www-form-urlencoded" in content_type:
            return self._sanitize_data({k: v if len(v) > 1 else v[0] for k, v in parse_qs(text).items()})
        return text

    def _sanitize_data(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: ("***" if k.lower() in self.SENSITIVE_FIELDS else self._sanitize_data(v)) for k, v in data.items()}
        if isinstance(data, list):
            return [self._sanitize_data(v) for v in data]
        return data

    @staticmethod
    def _log_response(log_data: dict) -> None:
        status_code = log_data["status_code"]
        if status_code < 400:
            logger.info("request_completed", **log_data)
        elif status_code < 500:
            logger.warning("request_client_error", **log_data)
        else:
            logger.error("request_server_error", **log_data)
