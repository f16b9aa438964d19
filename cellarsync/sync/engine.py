"""
Synchronization engine for Cellar Sync.

The SyncEngine owns the local mirror (AppState) of the store. It subscribes
to the rooms and logs collections and replaces the matching slice of the
mirror wholesale on every push. It ensures:
- The mirror only changes through pushed snapshots (no optimistic updates)
- Both channels are closed on deactivation
- An unconfigured store is reported, never waited on
- The initial seed runs once, idempotently, before subscribing

Invariants:
    - state.rooms and state.logs are only assigned in the push handlers
    - No merge logic: each push replaces the previous snapshot
    - Listeners never see a partially updated state

How to change safely:
    - Do not add diff/patch logic; stores give no ordering guarantee for it
    - Keep activate()/deactivate() idempotent
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from ..errors import ConfigurationError
from ..models import LogEntry, Room
from ..store.base import RoomStore, Subscription

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Lifecycle of the synchronization engine."""

    IDLE = "idle"
    ACTIVE = "active"
    CONFIG_ERROR = "config_error"
    STOPPED = "stopped"


@dataclass
class AppState:
    """The local mirror of all remote state.

    Attributes:
        rooms: Latest rooms snapshot, in store order
        logs: Latest logs snapshot, newest first
    """

    rooms: tuple[Room, ...] = ()
    logs: tuple[LogEntry, ...] = ()


StateListener = Callable[[AppState], None]


class SyncEngine:
    """Keeps an AppState mirror consistent with a RoomStore.

    Example:
        >>> engine = SyncEngine(store)
        >>> await engine.activate()
        >>> await store.settle()
        >>> len(engine.state.rooms)
        15
        >>> await engine.deactivate()
    """

    def __init__(self, store: RoomStore, seed_on_start: bool = True) -> None:
        """Initialize the engine.

        Args:
            store: Store to mirror
            seed_on_start: Run the idempotent seed during activate()
        """
        self.store = store
        self.seed_on_start = seed_on_start
        self.state = AppState()
        self.status = SyncStatus.IDLE
        self._rooms_sub: Optional[Subscription[Room]] = None
        self._logs_sub: Optional[Subscription[LogEntry]] = None
        self._listeners: List[StateListener] = []
        self._rooms_version = 0
        self._logs_version = 0

    @property
    def is_active(self) -> bool:
        return self.status == SyncStatus.ACTIVE

    @property
    def config_error(self) -> bool:
        return self.status == SyncStatus.CONFIG_ERROR

    async def activate(self) -> None:
        """Seed if needed and open both push subscriptions.

        Raises:
            ConfigurationError: If the store is not configured. No
                subscription is attempted and status becomes CONFIG_ERROR.
        """
        if self.status == SyncStatus.ACTIVE:
            logger.warning("SyncEngine already active")
            return

        if not self.store.is_configured():
            self.status = SyncStatus.CONFIG_ERROR
            logger.error("Document store is not configured; synchronization disabled")
            raise ConfigurationError(
                "Document store is not configured. Set STORE_BACKEND before starting."
            )

        if self.seed_on_start:
            seeded = await self.store.initialize_db()
            if seeded:
                logger.info("Initial room catalog seeded")

        self._rooms_sub = await self.store.subscribe_rooms(self._on_rooms)
        try:
            self._logs_sub = await self.store.subscribe_logs(self._on_logs)
        except Exception:
            self._rooms_sub.unsubscribe()
            self._rooms_sub = None
            raise

        self.status = SyncStatus.ACTIVE
        logger.info("SyncEngine activated")

    async def deactivate(self) -> None:
        """Close both subscriptions. Safe to call more than once."""
        if self._rooms_sub is not None:
            self._rooms_sub.unsubscribe()
            self._rooms_sub = None
        if self._logs_sub is not None:
            self._logs_sub.unsubscribe()
            self._logs_sub = None
        if self.status == SyncStatus.ACTIVE:
            self.status = SyncStatus.STOPPED
            logger.info("SyncEngine deactivated")

    async def __aenter__(self) -> SyncEngine:
        await self.activate()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.deactivate()

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback run after every snapshot replacement.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def find_room(self, room_id: str) -> Optional[Room]:
        """Look up a room in the current mirror."""
        for room in self.state.rooms:
            if room.id == room_id:
                return room
        return None

    @property
    def versions(self) -> tuple[int, int]:
        """Number of (rooms, logs) snapshots received so far."""
        return self._rooms_version, self._logs_version

    def _on_rooms(self, rooms: List[Room]) -> None:
        self.state = AppState(rooms=tuple(rooms), logs=self.state.logs)
        self._rooms_version += 1
        logger.debug("Rooms snapshot applied", extra={"count": len(rooms)})
        self._notify()

    def _on_logs(self, logs: List[LogEntry]) -> None:
        self.state = AppState(rooms=self.state.rooms, logs=tuple(logs))
        self._logs_version += 1
        logger.debug("Logs snapshot applied", extra={"count": len(logs)})
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception as e:
                logger.warning(f"State listener failed: {e}", exc_info=True)
