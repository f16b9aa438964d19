"""
Integration tests for the SyncEngine against real store backends.

Tests cover:
- Activation seeds and mirrors both collections
- Wholesale replacement of the mirror on every push
- Configuration errors never subscribe
- Deactivation closes both channels
- Listener notification
"""

import pytest

from cellarsync.errors import ConfigurationError
from cellarsync.store import InMemoryRoomStore, SqliteRoomStore, UnconfiguredStore
from cellarsync.sync import AppState, SyncEngine, SyncStatus


@pytest.fixture
async def store():
    store = InMemoryRoomStore(seed_room_count=5)
    await store.connect()
    yield store
    await store.close()


class TestActivation:
    """Tests for engine activation."""

    @pytest.mark.asyncio
    async def test_activate_seeds_and_mirrors(self, store):
        engine = SyncEngine(store)

        await engine.activate()
        await store.settle()

        assert engine.status == SyncStatus.ACTIVE
        assert [r.name for r in engine.state.rooms] == [f"Room {i}" for i in range(1, 6)]
        assert engine.state.logs == ()
        assert store.subscription_count() == 2
        await engine.deactivate()

    @pytest.mark.asyncio
    async def test_activate_without_seed(self, store):
        engine = SyncEngine(store, seed_on_start=False)

        await engine.activate()
        await store.settle()

        assert engine.state.rooms == ()
        await engine.deactivate()

    @pytest.mark.asyncio
    async def test_repeated_activation_seeds_once(self, store):
        """Two engines on one store see one seed set."""
        first = SyncEngine(store)
        second = SyncEngine(store)

        await first.activate()
        await second.activate()
        await store.settle()

        assert store.get_room_count() == 5
        assert len(second.state.rooms) == 5
        await first.deactivate()
        await second.deactivate()

    @pytest.mark.asyncio
    async def test_activate_twice_is_noop(self, store):
        engine = SyncEngine(store)

        await engine.activate()
        await engine.activate()

        assert store.subscription_count() == 2
        await engine.deactivate()

    @pytest.mark.asyncio
    async def test_unconfigured_store_never_subscribes(self):
        store = UnconfiguredStore()
        engine = SyncEngine(store)

        with pytest.raises(ConfigurationError):
            await engine.activate()

        assert engine.status == SyncStatus.CONFIG_ERROR
        assert engine.config_error
        assert store.subscription_count() == 0
        assert engine.state == AppState()

    @pytest.mark.asyncio
    async def test_context_manager(self, store):
        async with SyncEngine(store) as engine:
            assert engine.is_active
            assert store.subscription_count() == 2

        assert engine.status == SyncStatus.STOPPED
        assert store.subscription_count() == 0


class TestMirror:
    """Tests for snapshot replacement."""

    @pytest.mark.asyncio
    async def test_external_write_reaches_mirror(self, store):
        """Writes from another client arrive by push."""
        async with SyncEngine(store) as engine:
            await store.settle()
            room_id = engine.state.rooms[0].id

            await store.update_stock(room_id, "سكر", 12)
            await store.settle()

            assert engine.find_room(room_id).inventory.quantity("سكر") == 12

    @pytest.mark.asyncio
    async def test_mirror_replaced_wholesale(self, store):
        async with SyncEngine(store) as engine:
            await store.settle()
            before = engine.state.rooms

            await store.add_room("Extra")
            await store.settle()

            assert len(engine.state.rooms) == len(before) + 1
            assert engine.state.rooms is not before
            assert engine.versions == (2, 1)

    @pytest.mark.asyncio
    async def test_logs_arrive_newest_first(self, store):
        async with SyncEngine(store) as engine:
            for ts in (100, 200, 150):
                await store.add_log(
                    {
                        "user_role": "Admin",
                        "room_name": "Room 1",
                        "action": "stock in",
                        "details": "",
                        "timestamp": ts,
                    }
                )
            await store.settle()

            assert [e.timestamp for e in engine.state.logs] == [200, 150, 100]

    @pytest.mark.asyncio
    async def test_find_room_unknown(self, store):
        async with SyncEngine(store) as engine:
            await store.settle()
            assert engine.find_room("missing") is None

    @pytest.mark.asyncio
    async def test_deactivate_stops_updates(self, store):
        engine = SyncEngine(store)
        await engine.activate()
        await store.settle()

        await engine.deactivate()
        await engine.deactivate()
        await store.add_room("After")
        await store.settle()

        assert len(engine.state.rooms) == 5
        assert store.subscription_count() == 0


class TestListeners:
    """Tests for state listeners."""

    @pytest.mark.asyncio
    async def test_listener_sees_each_snapshot(self, store):
        engine = SyncEngine(store)
        seen = []
        engine.add_listener(lambda state: seen.append(len(state.rooms)))

        async with engine:
            await store.settle()
            await store.add_room("Extra")
            await store.settle()

        # One rooms push per change plus the initial logs push
        assert seen[-1] == 6
        assert 5 in seen

    @pytest.mark.asyncio
    async def test_remove_listener(self, store):
        engine = SyncEngine(store)
        seen = []
        remove = engine.add_listener(seen.append)
        remove()
        remove()

        async with engine:
            await store.settle()

        assert seen == []

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_mirror(self, store):
        engine = SyncEngine(store)

        def boom(state):
            raise RuntimeError("listener failed")

        engine.add_listener(boom)

        async with engine:
            await store.settle()
            assert len(engine.state.rooms) == 5


class TestSqliteBackend:
    """The engine behaves the same on the persistent backend."""

    @pytest.mark.asyncio
    async def test_activate_on_sqlite(self, tmp_path):
        store = SqliteRoomStore(str(tmp_path / "cellar.db"), seed_room_count=2)
        await store.connect()

        async with SyncEngine(store) as engine:
            await store.settle()
            assert [r.name for r in engine.state.rooms] == ["Room 1", "Room 2"]

        await store.close()
