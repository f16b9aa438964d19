"""
SQLite-backed document store for Cellar Sync.

This module persists the two collections in a single SQLite file:
- rooms: one row per room, inventory stored as JSON
- logs: append-only audit rows

Subscribers in the same process are pushed a fresh snapshot after every
committed write, matching the in-memory backend.

Invariants:
    - Every write runs in its own BEGIN IMMEDIATE transaction
    - The logs table is never updated or deleted from
    - A write that raises has rolled back

How to change safely:
    - Schema changes must be additive (new nullable columns)
    - Keep snapshot ordering identical to InMemoryRoomStore

Table schema:
    rooms:
        - seq INTEGER PRIMARY KEY AUTOINCREMENT (creation order)
        - id TEXT UNIQUE
        - name TEXT
        - temperature REAL
        - inventory_json TEXT
        - fermentation_start INTEGER NULL
        - created_at INTEGER (Unix ms)

    logs:
        - seq INTEGER PRIMARY KEY AUTOINCREMENT
        - id TEXT UNIQUE
        - user_role TEXT
        - room_name TEXT
        - action TEXT
        - details TEXT
        - timestamp INTEGER (Unix ms)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List

from ..models import (
    DEFAULT_TEMPERATURE,
    SEED_ROOM_COUNT,
    LogEntry,
    Room,
    UserRole,
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


class SqliteRoomStore(SubscriptionHub):
    """Persistent RoomStore on a local SQLite file.

    Thread safety:
        A connection is opened per operation. All calls are expected to
        come from one event loop.

    Example:
        >>> store = SqliteRoomStore("/var/lib/cellarsync/cellar.db")
        >>> await store.connect()
        >>> await store.initialize_db()
    """

    def __init__(
        self,
        path: str,
        busy_timeout_ms: int = 5000,
        seed_room_count: int = SEED_ROOM_COUNT,
        clock: Callable[[], int] = time_ms,
    ) -> None:
        super().__init__()
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        self.seed_room_count = seed_room_count
        self._clock = clock
        self._connected = False

    def is_configured(self) -> bool:
        return bool(str(self.path))

    @property
    def is_connected(self) -> bool:
        return self._connected

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the database file."""
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        if not self._connected:
            raise StoreConnectionError("Not connected")
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS rooms (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                temperature REAL NOT NULL,
                inventory_json TEXT NOT NULL DEFAULT '{}',
                fermentation_start INTEGER,
                created_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS logs (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                user_role TEXT NOT NULL,
                room_name TEXT NOT NULL,
                action TEXT NOT NULL,
                details TEXT NOT NULL,
                timestamp INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON logs(timestamp DESC, seq DESC);
        """)

    async def connect(self) -> None:
        """Create the database file and schema if needed."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._get_connection() as conn:
                self._create_schema(conn)
        except (sqlite3.Error, OSError) as e:
            raise StoreConnectionError(f"Cannot open SQLite store: {e}") from e
        self._connected = True
        logger.info("SqliteRoomStore connected")

    async def close(self) -> None:
        self._close_subscriptions()
        self._connected = False
        logger.debug("SqliteRoomStore closed")

    async def subscribe_rooms(self, on_change: Callable[[List[Room]], None]) -> Subscription[Room]:
        if not self._connected:
            raise StoreConnectionError("Not connected")
        return self._open_subscription(ROOMS, on_change, self._snapshot_rooms)

    async def subscribe_logs(
        self, on_change: Callable[[List[LogEntry]], None]
    ) -> Subscription[LogEntry]:
        if not self._connected:
            raise StoreConnectionError("Not connected")
        return self._open_subscription(LOGS, on_change, self._snapshot_logs)

    async def add_room(self, name: str) -> str:
        room_id = uuid.uuid4().hex
        try:
            with self._transaction() as conn:
                self._insert_room(conn, room_id, name)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to add room: {e}") from e
        self._publish(ROOMS)
        return room_id

    async def update_room_fields(self, room_id: str, fields: Dict[str, Any]) -> None:
        check_room_fields(fields)
        if not fields:
            return
        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = list(fields.values()) + [room_id]
        try:
            with self._transaction() as conn:
                cursor = conn.execute(f"UPDATE rooms SET {assignments} WHERE id = ?", params)
                if cursor.rowcount == 0:
                    raise RoomNotFoundInStoreError(room_id)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to update room: {e}") from e
        self._publish(ROOMS)

    async def update_stock(self, room_id: str, material: str, quantity: float) -> None:
        if quantity < 0:
            raise StoreError(f"Quantity cannot be negative: {quantity}")
        try:
            with self._transaction() as conn:
                row = conn.execute(
                    "SELECT inventory_json FROM rooms WHERE id = ?", (room_id,)
                ).fetchone()
                if row is None:
                    raise RoomNotFoundInStoreError(room_id)
                inventory = json.loads(row["inventory_json"])
                inventory[material] = quantity
                conn.execute(
                    "UPDATE rooms SET inventory_json = ? WHERE id = ?",
                    (json.dumps(inventory, ensure_ascii=False), room_id),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to update stock: {e}") from e
        self._publish(ROOMS)

    async def add_log(self, entry: Dict[str, Any]) -> str:
        record = build_log_record(entry, uuid.uuid4().hex, self._clock)
        log_id = record["id"]
        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO logs (id, user_role, room_name, action, details, timestamp)
                    VALUES (:id, :user_role, :room_name, :action, :details, :timestamp)
                    """,
                    record,
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to append log: {e}") from e
        self._publish(LOGS)
        return log_id

    async def initialize_db(self) -> bool:
        """Seed rooms when the table is empty. Safe to call repeatedly."""
        with self._transaction() as conn:
            count = conn.execute("SELECT COUNT(*) FROM rooms").fetchone()[0]
            if count:
                return False
            for name in seed_room_names(self.seed_room_count):
                self._insert_room(conn, uuid.uuid4().hex, name)
        self._publish(ROOMS)
        logger.info("Seeded initial rooms", extra={"count": self.seed_room_count})
        return True

    def _insert_room(self, conn: sqlite3.Connection, room_id: str, name: str) -> None:
        conn.execute(
            """
            INSERT INTO rooms (id, name, temperature, inventory_json,
                               fermentation_start, created_at)
            VALUES (?, ?, ?, '{}', NULL, ?)
            """,
            (room_id, name, DEFAULT_TEMPERATURE, self._clock()),
        )

    async def _snapshot_rooms(self) -> List[Room]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM rooms ORDER BY seq").fetchall()
        return [self._row_to_room(row) for row in rows]

    async def _snapshot_logs(self) -> List[LogEntry]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM logs ORDER BY timestamp DESC, seq DESC").fetchall()
        return [
            LogEntry(
                id=row["id"],
                user_role=UserRole(row["user_role"]),
                room_name=row["room_name"],
                action=row["action"],
                details=row["details"],
                timestamp=row["timestamp"],
            )
            for row in rows
        ]

    @staticmethod
    def _row_to_room(row: sqlite3.Row) -> Room:
        temperature = row["temperature"]
        if isinstance(temperature, float) and temperature.is_integer():
            temperature = int(temperature)
        return Room.from_dict(
            {
                "id": row["id"],
                "name": row["name"],
                "temperature": temperature,
                "inventory": json.loads(row["inventory_json"]),
                "fermentation_start": row["fermentation_start"],
                "created_at": row["created_at"],
            }
        )
