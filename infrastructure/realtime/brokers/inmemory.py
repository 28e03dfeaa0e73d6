"""In-memory implementation of RealtimeBrokerPort.

Single-process only. Useful for local dev and tests.
"""
from __future__ import annotations

from typing import List

from application.ports.realtime import BrokerMessage, Handler, RealtimeBrokerPort
from core.logging_config import get_logger


logger = get_logger(__name__)


class InMemoryRealtimeBroker(RealtimeBrokerPort):
    def __init__(self) -> None:
        self._handlers: List[Handler] = []

    async def publish(self, message: BrokerMessage) -> None:  # type: ignore[override]
        # Best-effort deliver sequentially
        for handler in list(self._handlers):
            try:
                await handler(message)
            except Exception as exc:
                logger.warning("inmemory_broker_handler_failed", list_id=message.list_id, error=str(exc))

    async def subscribe(self, handler: Handler) -> None:  # type: ignore[override]
        self._handlers.append(handler)

    async def aclose(self) -> None:  # type: ignore[override]
        self._handlers.clear()
