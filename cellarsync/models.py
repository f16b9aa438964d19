"""
Entity model for Cellar Sync.

This module defines the records mirrored from the store:
- Room: a physical storage room
- Inventory: material -> quantity mapping with absent-means-zero semantics
- LogEntry: an immutable audit record of one mutation
- UserRole: the closed set of session roles

Invariants:
    - Room.id and LogEntry.id never change after creation
    - Inventory quantities are never negative
    - LogEntry.room_name is a snapshot, not a live reference to the room
    - fermentation_start is either None or a Unix ms timestamp

How to change safely:
    - Add new Room fields with defaults so older stored documents still load
    - Never add mutating methods to LogEntry
    - Keep to_dict/from_dict symmetric; stores and the API rely on them
"""

from __future__ import annotations

import math
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

Number = int | float

INITIAL_MATERIALS: tuple[str, ...] = (
    "تفاح",
    "سكر",
    "خميرة",
    "عنب",
    "شعير",
    "ماء",
    "خشب",
)

SEED_ROOM_COUNT = 15
DEFAULT_TEMPERATURE: Number = 20


def time_ms() -> int:
    """Current wall clock time in Unix milliseconds."""
    return int(time.time() * 1000)


def format_number(value: Number) -> str:
    """Render a number the way it is shown in audit details.

    Integral floats lose their trailing ``.0`` so that ``10.0`` and ``10``
    produce the same text.
    """
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_number(value: Any) -> bool:
    """Whether value is a finite int/float (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


class UserRole(Enum):
    """Roles a session may act as."""

    ADMIN = "Admin"
    AUDITOR = "Auditor"
    GUEST = "Guest"

    @classmethod
    def from_str(cls, value: str) -> UserRole:
        """Parse a role name, case-insensitively."""
        for role in cls:
            if role.value.lower() == value.strip().lower():
                return role
        raise ValueError(f"Invalid role: {value}")


class Inventory(Mapping[str, Number]):
    """Immutable mapping from material name to non-negative quantity.

    Absent materials have quantity zero; use ``quantity()`` rather than
    indexing when that is the intended reading.

    Example:
        >>> inv = Inventory({"سكر": 10})
        >>> inv.quantity("سكر"), inv.quantity("ماء")
        (10, 0)
        >>> inv.with_quantity("ماء", 3).quantity("ماء")
        3
    """

    __slots__ = ("_items",)

    def __init__(self, items: Mapping[str, Number] | None = None) -> None:
        data = dict(items or {})
        for material, qty in data.items():
            if not isinstance(material, str) or not material:
                raise ValueError(f"Invalid material name: {material!r}")
            if not is_number(qty):
                raise ValueError(f"Quantity for {material} must be a number, got {qty!r}")
            if qty < 0:
                raise ValueError(f"Quantity for {material} cannot be negative: {qty}")
        self._items = data

    def __getitem__(self, material: str) -> Number:
        return self._items[material]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Inventory({self._items!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Inventory):
            return self._items == other._items
        if isinstance(other, Mapping):
            return self._items == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._items.items()))

    def quantity(self, material: str) -> Number:
        """Quantity of a material, zero when absent."""
        return self._items.get(material, 0)

    def with_quantity(self, material: str, quantity: Number) -> Inventory:
        """Return a copy with one material set to quantity."""
        items = dict(self._items)
        items[material] = quantity
        return Inventory(items)

    def to_dict(self) -> dict[str, Number]:
        return dict(self._items)


@dataclass(frozen=True)
class Room:
    """A physical storage room.

    Attributes:
        id: Opaque unique identifier assigned by the store
        name: Display label
        temperature: Current temperature reading (°C)
        inventory: Material quantities
        fermentation_start: Unix ms when fermentation started, None if inactive
        created_at: Unix ms when the room was created (used for ordering)
    """

    id: str
    name: str
    temperature: Number = DEFAULT_TEMPERATURE
    inventory: Inventory = field(default_factory=Inventory)
    fermentation_start: int | None = None
    created_at: int = 0

    @property
    def is_fermenting(self) -> bool:
        return self.fermentation_start is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage and transport."""
        return {
            "id": self.id,
            "name": self.name,
            "temperature": self.temperature,
            "inventory": self.inventory.to_dict(),
            "fermentation_start": self.fermentation_start,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Room:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            name=data["name"],
            temperature=data.get("temperature", DEFAULT_TEMPERATURE),
            inventory=Inventory(data.get("inventory") or {}),
            fermentation_start=data.get("fermentation_start"),
            created_at=data.get("created_at", 0),
        )


@dataclass(frozen=True)
class LogEntry:
    """An immutable audit record of exactly one mutation.

    Attributes:
        id: Unique identifier assigned by the store
        user_role: Role that performed the action
        room_name: Room name at the time of the action
        action: Short category label (e.g. "stock in")
        details: Human readable before/after description
        timestamp: Creation time (Unix ms)
    """

    id: str
    user_role: UserRole
    room_name: str
    action: str
    details: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_role": self.user_role.value,
            "room_name": self.room_name,
            "action": self.action,
            "details": self.details,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogEntry:
        return cls(
            id=data["id"],
            user_role=UserRole(data["user_role"]),
            room_name=data["room_name"],
            action=data["action"],
            details=data["details"],
            timestamp=data["timestamp"],
        )


def seed_room_names(count: int = SEED_ROOM_COUNT) -> list[str]:
    """Names of the rooms created by the initial seed."""
    return [f"Room {i}" for i in range(1, count + 1)]
