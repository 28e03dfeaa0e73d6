"""Process-wide subscription table: list id -> open channels."""
from __future__ import annotations

import threading
from typing import Dict, FrozenSet, List, Set, Tuple

from application.ports.realtime import Channel
from core.logging_config import get_logger
from infrastructure.realtime.channels import ChannelClosedError


logger = get_logger(__name__)


class SubscriptionRegistry:
    """Track which channels want which list's events.

    A single lock guards both maps; every critical section is a pure
    in-memory set operation. Empty entries are removed so the table
    does not grow with connection churn.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_list: Dict[int, Set[Channel]] = {}
        self._by_channel: Dict[Channel, Set[int]] = {}

    def register(self, list_id: int, channel: Channel) -> bool:
        """Add ``channel`` for ``list_id``. Returns False if it was already there."""
        if channel.closed:
            raise ChannelClosedError(channel.id)
        with self._lock:
            members = self._by_list.setdefault(list_id, set())
            if channel in members:
                return False
            members.add(channel)
            self._by_channel.setdefault(channel, set()).add(list_id)
        logger.debug("channel_registered", list_id=list_id, channel_id=channel.id)
        return True

    def unregister(self, list_id: int, channel: Channel) -> bool:
        """Remove ``channel`` from ``list_id``. Idempotent."""
        with self._lock:
            removed = self._discard(list_id, channel)
        if removed:
            logger.debug("channel_unregistered", list_id=list_id, channel_id=channel.id)
        return removed

    def unregister_all(self, channel: Channel) -> List[int]:
        """Remove ``channel`` from every list; returns the list ids it left."""
        with self._lock:
            list_ids = list(self._by_channel.get(channel, ()))
            for list_id in list_ids:
                self._discard(list_id, channel)
        if list_ids:
            logger.debug("channel_unregistered_all", channel_id=channel.id, list_ids=list_ids)
        return list_ids

    def _discard(self, list_id: int, channel: Channel) -> bool:
        # caller holds the lock
        members = self._by_list.get(list_id)
        if not members or channel not in members:
            return False
        members.discard(channel)
        if not members:
            del self._by_list[list_id]
        lists = self._by_channel.get(channel)
        if lists is not None:
            lists.discard(list_id)
            if not lists:
                del self._by_channel[channel]
        return True

    def channels_for(self, list_id: int) -> Tuple[Channel, ...]:
        """Snapshot of the channels registered for ``list_id``."""
        with self._lock:
            return tuple(self._by_list.get(list_id, ()))

    def lists_for(self, channel: Channel) -> FrozenSet[int]:
        with self._lock:
            return frozenset(self._by_channel.get(channel, ()))

    def list_ids(self) -> List[int]:
        with self._lock:
            return list(self._by_list)

    def __contains__(self, list_id: object) -> bool:
        with self._lock:
            return list_id in self._by_list

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_list)
