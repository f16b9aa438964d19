"""
Base protocol and types for the document store abstraction.

This module defines the RoomStore protocol that all backends must implement,
along with the push-subscription machinery and store-level errors.

Invariants:
    - A subscription delivers a full snapshot of its collection, never a diff
    - The first snapshot is delivered right after subscribing
    - Deliveries happen on the event loop, never inline with the write
    - Once unsubscribed, a subscription never calls its callback again
    - Log records are only ever appended

How to change safely:
    - Protocol changes require updating all implementations
    - Keep snapshot loaders free of side effects; they may run many times
    - Test new backends against tests/unit/test_store_memory.py scenarios
"""

from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from collections.abc import Awaitable, Callable
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Generic,
    List,
    Optional,
    Protocol,
    Set,
    TypeVar,
    runtime_checkable,
)

from ..models import LogEntry, Room, UserRole

if TYPE_CHECKING:
    from ..config import AppConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

ROOMS = "rooms"
LOGS = "logs"

ROOM_FIELDS = frozenset({"name", "temperature", "fermentation_start"})


class StoreError(Exception):
    """Base exception for store operations."""
    pass


class StoreConnectionError(StoreError):
    """Store is not connected or the connection failed."""
    pass


class StoreNotConfiguredError(StoreError):
    """Store has no connection settings."""
    pass


class RoomNotFoundInStoreError(StoreError):
    """Write targeted a room id the store does not hold."""

    def __init__(self, room_id: str) -> None:
        super().__init__(f"Room not found in store: {room_id}")
        self.room_id = room_id


class Subscription(Generic[T]):
    """A long-lived push channel over one collection.

    Each call to notify() schedules a delivery. Pending notifications are
    coalesced, and the snapshot is loaded at delivery time, so the callback
    always sees the collection as it is when delivery runs.

    Example:
        >>> sub = await store.subscribe_rooms(lambda rooms: print(len(rooms)))
        >>> await store.settle()
        15
        >>> sub.unsubscribe()
    """

    def __init__(
        self,
        collection: str,
        callback: Callable[[List[T]], None],
        loader: Callable[[], Awaitable[List[T]]],
        on_close: Optional[Callable[[Subscription[Any]], None]] = None,
    ) -> None:
        self.collection = collection
        self._callback = callback
        self._loader = loader
        self._on_close = on_close
        self._queue: asyncio.Queue[None] = asyncio.Queue()
        self._task: Optional[asyncio.Task[None]] = None
        self._closed = False
        self.delivered_count = 0

    @property
    def is_active(self) -> bool:
        return not self._closed

    def start(self) -> None:
        """Start the delivery task and queue the initial snapshot."""
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        self.notify()

    def notify(self) -> None:
        """Schedule delivery of a fresh snapshot."""
        if not self._closed:
            self._queue.put_nowait(None)

    async def join(self) -> None:
        """Wait until every scheduled delivery has run."""
        if self._closed:
            return
        await self._queue.join()

    def unsubscribe(self) -> None:
        """Close the channel and release its delivery task."""
        if self._closed:
            return
        self._closed = True
        if self._task is not None:
            self._task.cancel()
        # Release anyone blocked in join()
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        if self._on_close is not None:
            self._on_close(self)
        logger.debug("Subscription closed", extra={"collection": self.collection})

    async def _run(self) -> None:
        while True:
            await self._queue.get()
            pending = 1
            while not self._queue.empty():
                self._queue.get_nowait()
                pending += 1
            try:
                if not self._closed:
                    snapshot = await self._loader()
                    if not self._closed:
                        self._callback(snapshot)
                        self.delivered_count += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Delivery failures keep the channel open; the next change retries.
                logger.warning(
                    f"Snapshot delivery failed: {e}",
                    extra={"collection": self.collection},
                    exc_info=True,
                )
            finally:
                for _ in range(pending):
                    self._queue.task_done()


class SubscriptionHub:
    """Bookkeeping shared by backends for their push subscriptions."""

    def __init__(self) -> None:
        self._subscriptions: Dict[str, Set[Subscription[Any]]] = {ROOMS: set(), LOGS: set()}

    def _open_subscription(
        self,
        collection: str,
        callback: Callable[[List[Any]], None],
        loader: Callable[[], Awaitable[List[Any]]],
    ) -> Subscription[Any]:
        sub: Subscription[Any] = Subscription(
            collection, callback, loader, on_close=self._forget_subscription
        )
        self._subscriptions[collection].add(sub)
        sub.start()
        logger.debug("Subscription opened", extra={"collection": collection})
        return sub

    def _forget_subscription(self, sub: Subscription[Any]) -> None:
        self._subscriptions[sub.collection].discard(sub)

    def _publish(self, collection: str) -> None:
        for sub in list(self._subscriptions[collection]):
            sub.notify()

    def _close_subscriptions(self) -> None:
        for subs in self._subscriptions.values():
            for sub in list(subs):
                sub.unsubscribe()

    def subscription_count(self, collection: Optional[str] = None) -> int:
        """Number of open subscriptions, optionally for one collection."""
        if collection is not None:
            return len(self._subscriptions[collection])
        return sum(len(s) for s in self._subscriptions.values())

    async def settle(self) -> None:
        """Wait until all pending snapshot deliveries have run."""
        for subs in self._subscriptions.values():
            for sub in list(subs):
                await sub.join()


@runtime_checkable
class RoomStore(Protocol):
    """Protocol for document store backends.

    The store holds two collections, rooms and logs, and pushes full
    snapshots of a collection to its subscribers whenever it changes.

    Durability contract:
        - A write coroutine returns only after the change is committed
        - A write that raises has not changed anything

    Example:
        >>> store = InMemoryRoomStore()
        >>> await store.connect()
        >>> room_id = await store.add_room("Cellar A")
        >>> await store.update_stock(room_id, "سكر", 10)
    """

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the store has the settings needed to connect."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            StoreNotConfiguredError: If the store has no settings
            StoreConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close every subscription and release the connection."""
        ...

    @abstractmethod
    async def subscribe_rooms(self, on_change: Callable[[List[Room]], None]) -> Subscription[Room]:
        """Open a push channel over the rooms collection (creation order)."""
        ...

    @abstractmethod
    async def subscribe_logs(
        self, on_change: Callable[[List[LogEntry]], None]
    ) -> Subscription[LogEntry]:
        """Open a push channel over the logs collection (newest first)."""
        ...

    @abstractmethod
    async def add_room(self, name: str) -> str:
        """Create a room with empty inventory and no fermentation.

        Returns:
            The generated room id
        """
        ...

    @abstractmethod
    async def update_room_fields(self, room_id: str, fields: Dict[str, Any]) -> None:
        """Update name, temperature and/or fermentation_start of a room.

        Raises:
            RoomNotFoundInStoreError: If the room does not exist
            StoreError: If fields contains anything else
        """
        ...

    @abstractmethod
    async def update_stock(self, room_id: str, material: str, quantity: float) -> None:
        """Set one material's quantity in a room's inventory."""
        ...

    @abstractmethod
    async def add_log(self, entry: Dict[str, Any]) -> str:
        """Append an audit record; assigns id and, when absent, timestamp."""
        ...

    @abstractmethod
    async def initialize_db(self) -> bool:
        """Seed the initial rooms if the rooms collection is empty.

        Returns:
            True if seeding happened, False if data already existed
        """
        ...

    @abstractmethod
    async def settle(self) -> None:
        """Wait until all pending pushes have been delivered."""
        ...


class UnconfiguredStore(SubscriptionHub):
    """Stand-in used when no backend has been configured.

    is_configured() is False and every operation raises
    StoreNotConfiguredError, so nothing can hang on a missing connection.
    """

    def is_configured(self) -> bool:
        return False

    def _refuse(self) -> StoreNotConfiguredError:
        return StoreNotConfiguredError("Document store is not configured (set STORE_BACKEND)")

    async def connect(self) -> None:
        raise self._refuse()

    async def close(self) -> None:
        self._close_subscriptions()

    async def subscribe_rooms(self, on_change: Callable[[List[Room]], None]) -> Subscription[Room]:
        raise self._refuse()

    async def subscribe_logs(
        self, on_change: Callable[[List[LogEntry]], None]
    ) -> Subscription[LogEntry]:
        raise self._refuse()

    async def add_room(self, name: str) -> str:
        raise self._refuse()

    async def update_room_fields(self, room_id: str, fields: Dict[str, Any]) -> None:
        raise self._refuse()

    async def update_stock(self, room_id: str, material: str, quantity: float) -> None:
        raise self._refuse()

    async def add_log(self, entry: Dict[str, Any]) -> str:
        raise self._refuse()

    async def initialize_db(self) -> bool:
        raise self._refuse()


def check_room_fields(fields: Dict[str, Any]) -> None:
    """Reject field names a room update may not touch.

    Raises:
        StoreError: If an unknown or immutable field is present
    """
    unknown = set(fields) - ROOM_FIELDS
    if unknown:
        raise StoreError(f"Cannot update room fields: {sorted(unknown)}")


def create_store(config: "AppConfig") -> RoomStore:
    """Factory function to create a store from configuration.

    Args:
        config: Application configuration

    Returns:
        Appropriate RoomStore implementation; UnconfiguredStore when no
        backend is configured

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryRoomStore
    from .sqlite import SqliteRoomStore

    if not config.store.is_configured:
        return UnconfiguredStore()

    if config.store.backend == StoreBackend.MEMORY:
        return InMemoryRoomStore(seed_room_count=config.sync.seed_room_count)
    elif config.store.backend == StoreBackend.SQLITE:
        assert config.store.sqlite_path is not None
        return SqliteRoomStore(
            config.store.sqlite_path,
            busy_timeout_ms=config.store.busy_timeout_ms,
            seed_room_count=config.sync.seed_room_count,
        )
    else:
        raise ValueError(f"Unsupported store backend: {config.store.backend}")


def build_log_record(
    entry: Dict[str, Any], log_id: str, clock: Callable[[], int]
) -> Dict[str, Any]:
    """Normalize an audit entry into the stored record shape.

    The role is stored as its canonical value so every later snapshot can
    load it. The timestamp is assigned from clock only when absent.

    Raises:
        StoreError: If the role is not a known UserRole value
    """
    try:
        role = UserRole(entry["user_role"])
    except ValueError:
        raise StoreError(f"Invalid user_role for log entry: {entry['user_role']!r}")
    timestamp = entry.get("timestamp")
    return {
        "id": log_id,
        "user_role": role.value,
        "room_name": entry["room_name"],
        "action": entry["action"],
        "details": entry["details"],
        "timestamp": timestamp if timestamp is not None else clock(),
    }
