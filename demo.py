#!/usr/bin/env python3
"""
Cellar Sync Demo - Shows mutations, the audit trail and derived views.

This demo uses the core components directly on a temporary SQLite store.
"""

import asyncio
import os
import tempfile

from cellarsync.apply import AccessGate, MutationService
from cellarsync.errors import AccessDeniedError
from cellarsync.models import UserRole
from cellarsync.store import SqliteRoomStore
from cellarsync.sync import SyncEngine
from cellarsync.views import RoomViews


async def main():
    print("=" * 60)
    print("Cellar Sync Demo - Rooms, Stock and Audit Log")
    print("=" * 60)
    print()

    with tempfile.TemporaryDirectory() as data_dir:
        db_path = os.path.join(data_dir, "cellar.db")
        print(f"[Setup] Using database: {db_path}")

        # 1. Initialize Components
        print("\n[Step 1] Initializing components...")

        store = SqliteRoomStore(db_path, seed_room_count=3)
        await store.connect()

        engine = SyncEngine(store)
        service = MutationService(store, engine, AccessGate())
        views = RoomViews(engine)

        await engine.activate()
        await store.settle()

        print(f"  - Seeded rooms: {[r.name for r in engine.state.rooms]}")

        # 2. Add a room as Admin
        print("\n[Step 2] Admin adds a room...")

        result = await service.add_room(UserRole.ADMIN, "Barrel Room")
        await store.settle()
        room_id = result.room_id
        print(f"  - {result.action}: {result.room_name}")

        # 3. Guest is refused
        print("\n[Step 3] Guest tries to add a room...")

        try:
            await service.add_room(UserRole.GUEST, "Not Allowed")
        except AccessDeniedError as e:
            print(f"  - Rejected: {e.message}")

        # 4. Stock and temperature
        print("\n[Step 4] Adjusting stock and temperature...")

        for material, delta in (("سكر", 10), ("خميرة", 2), ("سكر", -25)):
            result = await service.adjust_stock(UserRole.AUDITOR, room_id, material, delta)
            await store.settle()
            print(f"  - {result.action}: {result.details}")

        result = await service.update_temperature(UserRole.GUEST, room_id, 16.5)
        await store.settle()
        print(f"  - {result.action}: {result.details}")

        # 5. Fermentation
        print("\n[Step 5] Starting fermentation...")

        result = await service.toggle_fermentation(UserRole.ADMIN, room_id)
        await store.settle()
        print(f"  - {result.action}")

        # 6. Views
        print("\n[Step 6] Derived views...")

        stats = views.stats()
        print(f"  Rooms: {stats.total_rooms}")
        print(f"  Fermenting: {stats.active_fermentation}")
        print(f"  Material kinds: {stats.total_items}")
        print(f"  Search 'barrel': {[r.name for r in views.filter('barrel')]}")
        print(f"  Catalog: {', '.join(views.materials())}")

        # 7. Audit trail
        print("\n[Step 7] Audit log (newest first)...")

        for entry in views.logs():
            print(f"  [{entry.user_role.value}] {entry.room_name}: {entry.action} ({entry.details})")

        # Cleanup
        await engine.deactivate()
        await store.close()

        print()
        print("=" * 60)
        print("Demo Complete!")
        print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
