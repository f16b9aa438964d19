"""
In-memory document store for testing and local development.

This module provides a fully functional RoomStore that keeps all data in
memory. Useful for:
- Unit and integration tests
- Local development without a database file

Invariants:
    - All data is lost on close() or process exit
    - Provides the same push semantics as persistent backends
    - Safe to use from multiple coroutines (asyncio lock around writes)

How to change safely:
    - Keep interface compatible with the RoomStore protocol
    - Add testing helpers below the protocol methods
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from typing import Any, Dict, List, Optional, Tuple

from ..models import (
    DEFAULT_TEMPERATURE,
    SEED_ROOM_COUNT,
    LogEntry,
    Room,
    seed_room_names,
    time_ms,
)
from .base import (
    LOGS,
    ROOMS,
    RoomNotFoundInStoreError,
    StoreConnectionError,
    StoreError,
    Subscription,
    SubscriptionHub,
    build_log_record,
    check_room_fields,
)

logger = logging.getLogger(__name__)


class InMemoryRoomStore(SubscriptionHub):
    """In-memory implementation of RoomStore.

    Attributes:
        seed_room_count: Number of rooms created by initialize_db()
        latency: Seconds each write suspends for, to simulate a network hop

    Example:
        >>> store = InMemoryRoomStore()
        >>> await store.connect()
        >>> await store.initialize_db()
        True
        >>> store.get_room_count()
        15
    """

    def __init__(
        self,
        seed_room_count: int = SEED_ROOM_COUNT,
        latency: float = 0.0,
        clock: Callable[[], int] = time_ms,
    ) -> None:
        super().__init__()
        self.seed_room_count = seed_room_count
        self.latency = latency
        self._clock = clock
        self._rooms: Dict[str, Dict[str, Any]] = {}
        self._logs: List[Dict[str, Any]] = []
        self._failures: List[Tuple[Optional[str], Exception]] = []
        self._connected = False
        self._lock = asyncio.Lock()

    def is_configured(self) -> bool:
        return True

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryRoomStore connected")

    async def close(self) -> None:
        """Close all subscriptions and clear all data."""
        self._close_subscriptions()
        self._connected = False
        self._rooms.clear()
        self._logs.clear()
        self._failures.clear()
        logger.debug("InMemoryRoomStore closed")

    async def subscribe_rooms(self, on_change: Callable[[List[Room]], None]) -> Subscription[Room]:
        self._require_connection()
        return self._open_subscription(ROOMS, on_change, self._snapshot_rooms)

    async def subscribe_logs(
        self, on_change: Callable[[List[LogEntry]], None]
    ) -> Subscription[LogEntry]:
        self._require_connection()
        return self._open_subscription(LOGS, on_change, self._snapshot_logs)

    async def add_room(self, name: str) -> str:
        await self._before_write("add_room")
        room_id = uuid.uuid4().hex
        async with self._lock:
            self._rooms[room_id] = self._new_room_doc(room_id, name)
        self._publish(ROOMS)
        logger.debug("Room added", extra={"room_id": room_id})
        return room_id

    async def update_room_fields(self, room_id: str, fields: Dict[str, Any]) -> None:
        check_room_fields(fields)
        await self._before_write("update_room_fields")
        async with self._lock:
            doc = self._rooms.get(room_id)
            if doc is None:
                raise RoomNotFoundInStoreError(room_id)
            doc.update(fields)
        self._publish(ROOMS)

    async def update_stock(self, room_id: str, material: str, quantity: float) -> None:
        if quantity < 0:
            raise StoreError(f"Quantity cannot be negative: {quantity}")
        await self._before_write("update_stock")
        async with self._lock:
            doc = self._rooms.get(room_id)
            if doc is None:
                raise RoomNotFoundInStoreError(room_id)
            inventory = dict(doc["inventory"])
            inventory[material] = quantity
            doc["inventory"] = inventory
        self._publish(ROOMS)

    async def add_log(self, entry: Dict[str, Any]) -> str:
        doc = build_log_record(entry, uuid.uuid4().hex, self._clock)
        await self._before_write("add_log")
        log_id = doc["id"]
        async with self._lock:
            self._logs.append(doc)
        self._publish(LOGS)
        return log_id

    async def initialize_db(self) -> bool:
        """Seed rooms when the collection is empty. Safe to call repeatedly."""
        self._require_connection()
        async with self._lock:
            if self._rooms:
                return False
            for name in seed_room_names(self.seed_room_count):
                room_id = uuid.uuid4().hex
                self._rooms[room_id] = self._new_room_doc(room_id, name)
        self._publish(ROOMS)
        logger.info("Seeded initial rooms", extra={"count": self.seed_room_count})
        return True

    def _new_room_doc(self, room_id: str, name: str) -> Dict[str, Any]:
        return {
            "id": room_id,
            "name": name,
            "temperature": DEFAULT_TEMPERATURE,
            "inventory": {},
            "fermentation_start": None,
            "created_at": self._clock(),
        }

    async def _snapshot_rooms(self) -> List[Room]:
        return [Room.from_dict(doc) for doc in self._rooms.values()]

    async def _snapshot_logs(self) -> List[LogEntry]:
        ordered = sorted(
            enumerate(self._logs),
            key=lambda pair: (pair[1]["timestamp"], pair[0]),
            reverse=True,
        )
        return [LogEntry.from_dict(doc) for _, doc in ordered]

    def _require_connection(self) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected")

    async def _before_write(self, operation: str) -> None:
        self._require_connection()
        # Every write suspends at least once, like a network call would.
        await asyncio.sleep(self.latency)
        for i, (target, exc) in enumerate(self._failures):
            if target is None or target == operation:
                del self._failures[i]
                raise exc

    # Testing helpers

    def inject_failure(self, exception: Exception, operation: Optional[str] = None) -> None:
        """Make the next write (or the next write of one operation) raise.

        Args:
            exception: Exception to raise
            operation: add_room, update_room_fields, update_stock or add_log;
                None matches any write
        """
        self._failures.append((operation, exception))

    def get_room_count(self) -> int:
        return len(self._rooms)

    def get_log_count(self) -> int:
        return len(self._logs)

    def get_room(self, room_id: str) -> Optional[Room]:
        doc = self._rooms.get(room_id)
        return Room.from_dict(doc) if doc else None

    async def wait_for_logs(self, count: int, timeout: float = 5.0) -> bool:
        """Wait until at least count log entries exist.

        Returns:
            True if count reached, False if timeout
        """
        start = time.time()
        while time.time() - start < timeout:
            if self.get_log_count() >= count:
                return True
            await asyncio.sleep(0.05)
        return False
