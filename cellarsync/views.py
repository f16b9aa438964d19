"""
Derived views over the room mirror.

Pure functions computing:
- The materials catalog (seed materials plus every stocked material)
- Rooms filtered by a search query
- Aggregate statistics

RoomViews binds these to a SyncEngine and recomputes on every call, so a
view can never lag behind the mirror it was computed from.

Invariants:
    - Every inventory key of every room appears in the catalog
    - An empty query returns all rooms in their original order
    - Nothing here is cached
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from typing import Any, Optional

from .models import INITIAL_MATERIALS, LogEntry, Room, time_ms
from .sync.engine import SyncEngine


@dataclass(frozen=True)
class RoomStats:
    """Aggregate statistics over all rooms.

    Attributes:
        total_rooms: Number of rooms
        active_fermentation: Rooms with fermentation in progress
        total_items: Sum over rooms of distinct materials held
    """

    total_rooms: int
    active_fermentation: int
    total_items: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def materials_catalog(
    rooms: Iterable[Room], seed: Sequence[str] = INITIAL_MATERIALS
) -> list[str]:
    """Union of the seed materials and every material any room holds.

    Seed materials come first, then new materials in order of first
    appearance. No duplicates.
    """
    catalog = dict.fromkeys(seed)
    for room in rooms:
        catalog.update(dict.fromkeys(room.inventory))
    return list(catalog)


def filter_rooms(rooms: Sequence[Room], query: str) -> list[Room]:
    """Rooms whose name or any material contains query (case-insensitive).

    The query is matched as given; surrounding whitespace is significant.
    """
    if not query:
        return list(rooms)
    needle = query.lower()
    return [
        room
        for room in rooms
        if needle in room.name.lower()
        or any(needle in material.lower() for material in room.inventory)
    ]


def room_stats(rooms: Sequence[Room]) -> RoomStats:
    return RoomStats(
        total_rooms=len(rooms),
        active_fermentation=sum(1 for r in rooms if r.fermentation_start is not None),
        total_items=sum(len(r.inventory) for r in rooms),
    )


def fermentation_elapsed_ms(room: Room, now: Optional[int] = None) -> Optional[int]:
    """Milliseconds since fermentation started, or None if inactive."""
    if room.fermentation_start is None:
        return None
    now = time_ms() if now is None else now
    return max(0, now - room.fermentation_start)


class RoomViews:
    """Derived views read live from a SyncEngine's mirror.

    Example:
        >>> views = RoomViews(engine)
        >>> views.stats().total_rooms
        15
        >>> [r.name for r in views.filter("room 1")][:2]
        ['Room 1', 'Room 10']
    """

    def __init__(self, engine: SyncEngine) -> None:
        self.engine = engine

    def materials(self) -> list[str]:
        return materials_catalog(self.engine.state.rooms)

    def filter(self, query: str = "") -> list[Room]:
        return filter_rooms(self.engine.state.rooms, query)

    def stats(self) -> RoomStats:
        return room_stats(self.engine.state.rooms)

    def logs(self, limit: Optional[int] = None) -> list[LogEntry]:
        """Audit entries, newest first."""
        logs = list(self.engine.state.logs)
        return logs if limit is None else logs[:limit]
