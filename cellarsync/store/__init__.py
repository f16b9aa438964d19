"""
Document store abstraction for Cellar Sync.

This module provides a pluggable store interface supporting:
- SQLite (persistent, single node)
- In-memory (for testing)

The store is the single source of truth. The local mirror held by the
SyncEngine is rebuilt from the full snapshots the store pushes.

Invariants:
    - Writes return only after the change is committed
    - Every committed change triggers a full snapshot push to subscribers
    - Failed writes must not result in partial changes

How to change safely:
    - New backends must implement the RoomStore protocol
    - Keep snapshot ordering consistent across backends
"""

from .base import (
    LOGS,
    ROOMS,
    RoomNotFoundInStoreError,
    RoomStore,
    StoreConnectionError,
    StoreError,
    StoreNotConfiguredError,
    Subscription,
    UnconfiguredStore,
    create_store,
)
from .memory import InMemoryRoomStore
from .sqlite import SqliteRoomStore

__all__ = [
    # Protocol and types
    "RoomStore",
    "Subscription",
    "ROOMS",
    "LOGS",
    "StoreError",
    "StoreConnectionError",
    "StoreNotConfiguredError",
    "RoomNotFoundInStoreError",
    # Factory
    "create_store",
    # Implementations
    "InMemoryRoomStore",
    "SqliteRoomStore",
    "UnconfiguredStore",
]
