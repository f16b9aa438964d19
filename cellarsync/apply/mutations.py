"""
Mutation service for Cellar Sync.

Every mutation is a single logical transaction of two steps:
1. One write to a room (or creation of a new room) through the store
2. Exactly one audit LogEntry appended through the store

Invariants:
    - Access is checked before anything else
    - Input is validated and the room resolved from the local mirror
      before any network call
    - If the write fails, no audit entry is appended
    - The mirror is never modified here; changes arrive by push
    - "Old" values in audit details come from the mirror and may be stale
      under concurrent external writes

How to change safely:
    - New mutations must call _write() exactly once and _audit() exactly once
    - Keep audit action labels stable; reports and filters match on them
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

from ..errors import (
    AuditAppendError,
    RoomNotFoundError,
    ValidationError,
    WriteError,
)
from ..models import Number, Room, UserRole, format_number, is_number, time_ms
from ..store.base import RoomStore
from ..sync.engine import SyncEngine
from .acl import AccessGate, MutationAction, get_access_gate

logger = logging.getLogger(__name__)

# Audit action labels
ROOM_CREATED = "room created"
ROOM_RENAMED = "room renamed"
TEMPERATURE_CHANGED = "temperature changed"
STOCK_IN = "stock in"
STOCK_OUT = "stock out"
FERMENTATION_STARTED = "fermentation started"
FERMENTATION_STOPPED = "fermentation stopped"


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a successful mutation.

    Attributes:
        action: Audit action label
        room_id: Affected room (None only if the store did not return one)
        room_name: Room name recorded in the audit entry
        details: Audit details text
        log_id: Id of the appended audit entry
    """

    action: str
    room_id: Optional[str]
    room_name: str
    details: str
    log_id: str


class MutationService:
    """Applies role-gated mutations and records their audit entries.

    Example:
        >>> service = MutationService(store, engine)
        >>> result = await service.adjust_stock(UserRole.ADMIN, room_id, "سكر", 10)
        >>> result.details
        'سكر: 0 → 10'
    """

    def __init__(
        self,
        store: RoomStore,
        engine: SyncEngine,
        gate: Optional[AccessGate] = None,
        clock: Callable[[], int] = time_ms,
    ) -> None:
        """Initialize the service.

        Args:
            store: Store to write through
            engine: Engine whose mirror supplies current room values
            gate: Access gate (default instance if omitted)
            clock: Unix ms clock used for fermentation and audit timestamps
        """
        self.store = store
        self.engine = engine
        self.gate = gate or get_access_gate()
        self._clock = clock

    async def add_room(self, role: UserRole, name: str) -> MutationResult:
        """Create a room with empty inventory and no fermentation.

        Raises:
            AccessDeniedError: If role may not add rooms
            ValidationError: If name is empty
            WriteError: If the store rejects the write
            AuditAppendError: If the audit entry could not be appended
        """
        self.gate.check_or_raise(role, MutationAction.ADD_ROOM)
        name = _require_text(name, "name")

        room_id = await self._write(ROOM_CREATED, None, lambda: self.store.add_room(name))
        return await self._audit(role, room_id, name, ROOM_CREATED, "new room created")

    async def rename_room(self, role: UserRole, room_id: str, name: str) -> MutationResult:
        """Rename a room. The audit entry keeps the name it had before."""
        self.gate.check_or_raise(role, MutationAction.RENAME_ROOM)
        name = _require_text(name, "name")
        room = self._require_room(room_id)

        await self._write(
            ROOM_RENAMED, room_id, lambda: self.store.update_room_fields(room_id, {"name": name})
        )
        return await self._audit(role, room_id, room.name, ROOM_RENAMED, f"{room.name} → {name}")

    async def update_temperature(
        self, role: UserRole, room_id: str, temperature: Number
    ) -> MutationResult:
        """Set a room's temperature."""
        self.gate.check_or_raise(role, MutationAction.UPDATE_TEMPERATURE)
        _require_number(temperature, "temperature")
        room = self._require_room(room_id)

        await self._write(
            TEMPERATURE_CHANGED,
            room_id,
            lambda: self.store.update_room_fields(room_id, {"temperature": temperature}),
        )
        details = f"{format_number(room.temperature)}° → {format_number(temperature)}°"
        return await self._audit(role, room_id, room.name, TEMPERATURE_CHANGED, details)

    async def adjust_stock(
        self, role: UserRole, room_id: str, material: str, delta: Number
    ) -> MutationResult:
        """Add (delta > 0) or remove (delta <= 0) stock of one material.

        The new quantity is clamped at zero: removing more than is held
        leaves zero and still records an audit entry.
        """
        self.gate.check_or_raise(role, MutationAction.ADJUST_STOCK)
        material = _require_text(material, "material")
        _require_number(delta, "delta")
        room = self._require_room(room_id)

        old_qty = room.inventory.quantity(material)
        new_qty = max(0, old_qty + delta)
        action = STOCK_IN if delta > 0 else STOCK_OUT

        await self._write(
            action, room_id, lambda: self.store.update_stock(room_id, material, new_qty)
        )
        details = f"{material}: {format_number(old_qty)} → {format_number(new_qty)}"
        return await self._audit(role, room_id, room.name, action, details)

    async def toggle_fermentation(self, role: UserRole, room_id: str) -> MutationResult:
        """Start fermentation now, or stop it if already running."""
        self.gate.check_or_raise(role, MutationAction.TOGGLE_FERMENTATION)
        room = self._require_room(room_id)

        starting = not room.is_fermenting
        new_start = self._clock() if starting else None
        action = FERMENTATION_STARTED if starting else FERMENTATION_STOPPED

        await self._write(
            action,
            room_id,
            lambda: self.store.update_room_fields(room_id, {"fermentation_start": new_start}),
        )
        details = "process started" if starting else "process stopped"
        return await self._audit(role, room_id, room.name, action, details)

    def _require_room(self, room_id: str) -> Room:
        room = self.engine.find_room(room_id)
        if room is None:
            raise RoomNotFoundError(room_id)
        return room

    async def _write(
        self,
        action: str,
        room_id: Optional[str],
        operation: Callable[[], Awaitable[Any]],
    ) -> Any:
        try:
            return await operation()
        except Exception as e:
            logger.warning(
                f"Write failed, audit skipped: {e}",
                extra={"action": action, "room_id": room_id},
            )
            raise WriteError(f"Failed to apply '{action}': {e}", action, room_id) from e

    async def _audit(
        self,
        role: UserRole,
        room_id: Optional[str],
        room_name: str,
        action: str,
        details: str,
    ) -> MutationResult:
        entry = {
            "timestamp": self._clock(),
            "user_role": role,
            "room_name": room_name,
            "action": action,
            "details": details,
        }
        try:
            log_id = await self.store.add_log(entry)
        except Exception as e:
            logger.error(
                f"Audit append failed after committed write: {e}",
                extra={"action": action, "room_id": room_id, "role": role.value},
                exc_info=True,
            )
            raise AuditAppendError(
                f"'{action}' was applied but its audit entry failed: {e}", action, room_id
            ) from e

        logger.info(
            "Mutation applied",
            extra={
                "action": action,
                "room_id": room_id,
                "room_name": room_name,
                "role": role.value,
            },
        )
        return MutationResult(
            action=action,
            room_id=room_id,
            room_name=room_name,
            details=details,
            log_id=log_id,
        )


def _require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be a non-empty string", field_name)
    return value.strip()


def _require_number(value: Any, field_name: str) -> None:
    if not is_number(value):
        raise ValidationError(f"{field_name} must be a finite number", field_name)
