"""
Unit tests for derived views.

Tests cover:
- Materials catalog ordering and coverage
- Search filtering
- Statistics
- Fermentation elapsed time
"""

import pytest

from cellarsync.models import INITIAL_MATERIALS, Inventory, Room
from cellarsync.views import (
    RoomStats,
    fermentation_elapsed_ms,
    filter_rooms,
    materials_catalog,
    room_stats,
)


def make_room(name, inventory=None, fermentation_start=None, room_id=None):
    return Room(
        id=room_id or name.lower().replace(" ", "-"),
        name=name,
        inventory=Inventory(inventory or {}),
        fermentation_start=fermentation_start,
    )


@pytest.fixture
def rooms():
    return [
        make_room("Room 1", {"سكر": 10, "Hops": 2}, fermentation_start=1000),
        make_room("Room 2", {"عنب": 0}),
        make_room("Barrel Room"),
        make_room("Room 10", {"hops": 1, "Oak Chips": 3}, fermentation_start=2000),
    ]


class TestMaterialsCatalog:
    """Tests for materials_catalog."""

    def test_seed_only_when_no_stock(self):
        assert materials_catalog([]) == list(INITIAL_MATERIALS)

    def test_seed_first_then_first_appearance(self, rooms):
        catalog = materials_catalog(rooms)

        assert catalog[: len(INITIAL_MATERIALS)] == list(INITIAL_MATERIALS)
        assert catalog[len(INITIAL_MATERIALS):] == ["Hops", "hops", "Oak Chips"]

    def test_contains_every_inventory_key(self, rooms):
        catalog = materials_catalog(rooms)

        for room in rooms:
            for material in room.inventory:
                assert material in catalog

    def test_no_duplicates(self, rooms):
        catalog = materials_catalog(rooms + rooms)
        assert len(catalog) == len(set(catalog))

    def test_zero_quantity_material_still_listed(self, rooms):
        assert "عنب" in materials_catalog(rooms)


class TestFilterRooms:
    """Tests for filter_rooms."""

    def test_empty_query_returns_all(self, rooms):
        assert filter_rooms(rooms, "") == rooms

    def test_whitespace_matched_literally(self, rooms):
        """Whitespace is part of the query, never trimmed."""
        assert filter_rooms(rooms, "   ") == []
        assert filter_rooms(rooms, "room 1 ") == []
        assert [r.name for r in filter_rooms(rooms, " 1")] == ["Room 1", "Room 10"]
        assert [r.name for r in filter_rooms(rooms, "l r")] == ["Barrel Room"]

    def test_lowercase_folding_only(self):
        """Matching lowercases both sides; no wider case folding."""
        rooms = [make_room("Straße")]

        assert filter_rooms(rooms, "STRAßE") == rooms
        assert filter_rooms(rooms, "strasse") == []

    def test_matches_name_case_insensitive(self, rooms):
        result = filter_rooms(rooms, "BARREL")
        assert [r.name for r in result] == ["Barrel Room"]

    def test_matches_material(self, rooms):
        result = filter_rooms(rooms, "oak")
        assert [r.name for r in result] == ["Room 10"]

    def test_matches_arabic_material(self, rooms):
        result = filter_rooms(rooms, "سكر")
        assert [r.name for r in result] == ["Room 1"]

    def test_preserves_order(self, rooms):
        result = filter_rooms(rooms, "room 1")
        assert [r.name for r in result] == ["Room 1", "Room 10"]

    def test_no_match(self, rooms):
        assert filter_rooms(rooms, "zzz") == []


class TestRoomStats:
    """Tests for room_stats."""

    def test_stats(self, rooms):
        stats = room_stats(rooms)

        assert stats == RoomStats(total_rooms=4, active_fermentation=2, total_items=5)

    def test_empty(self):
        assert room_stats([]).to_dict() == {
            "total_rooms": 0,
            "active_fermentation": 0,
            "total_items": 0,
        }


class TestFermentationElapsed:
    """Tests for fermentation_elapsed_ms."""

    def test_inactive(self):
        assert fermentation_elapsed_ms(make_room("R")) is None

    def test_elapsed(self):
        room = make_room("R", fermentation_start=1000)
        assert fermentation_elapsed_ms(room, now=61_000) == 60_000

    def test_clock_skew_clamps_to_zero(self):
        room = make_room("R", fermentation_start=5000)
        assert fermentation_elapsed_ms(room, now=1000) == 0
