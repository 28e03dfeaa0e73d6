"""
购物清单客户端：REST 调用、实时订阅（自动重连）与乐观更新
"""
from .config import ClientSettings
from .api_client import (
    APIError,
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    ServerError,
)
from .list_store import ListStoreClient
from .sse_client import ConnectionState, ReconnectingClient, SSEFrameDecoder
from .optimistic import ListView, MutationFailedError, OptimisticMutationCoordinator

__all__ = [
    "ClientSettings",
    "APIError",
    "AuthenticationError",
    "NotFoundError",
    "RateLimitError",
    "ServerError",
    "ListStoreClient",
    "ConnectionState",
    "ReconnectingClient",
    "SSEFrameDecoder",
    "ListView",
    "MutationFailedError",
    "OptimisticMutationCoordinator",
]
