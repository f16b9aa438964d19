"""
API routes for Cellar Sync.

Read routes serve derived views computed from the live mirror. Write routes
call the MutationService with the caller's role, then wait for the store's
push to round-trip so a follow-up read sees the change.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, Field

from ..apply.mutations import MutationResult
from ..main import Server
from ..models import LogEntry, Room, UserRole
from ..sync.engine import SyncStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Cellar Sync"])

SETUP_NOTICE = (
    "The document store is not configured. Set STORE_BACKEND (memory or sqlite) "
    "and, for sqlite, SQLITE_PATH, then restart the service."
)


# --- Request/Response Models ---


class AddRoomRequest(BaseModel):
    """Request to create a room."""

    name: str = Field(..., description="Display name of the new room")


class RenameRoomRequest(BaseModel):
    name: str = Field(..., description="New display name")


class TemperatureRequest(BaseModel):
    temperature: float = Field(..., description="New temperature reading (°C)")


class StockRequest(BaseModel):
    """Request to adjust a material's stock by a signed delta."""

    material: str = Field(..., description="Material name")
    delta: float = Field(..., description="Positive to stock in, negative to stock out")


class RoomResponse(BaseModel):
    id: str
    name: str
    temperature: float
    inventory: dict[str, float]
    fermentation_start: int | None = None
    is_fermenting: bool

    @classmethod
    def from_room(cls, room: Room) -> "RoomResponse":
        return cls(
            id=room.id,
            name=room.name,
            temperature=room.temperature,
            inventory=room.inventory.to_dict(),
            fermentation_start=room.fermentation_start,
            is_fermenting=room.is_fermenting,
        )


class LogResponse(BaseModel):
    id: str
    user_role: str
    room_name: str
    action: str
    details: str
    timestamp: int

    @classmethod
    def from_entry(cls, entry: LogEntry) -> "LogResponse":
        return cls(**entry.to_dict())


class StatsResponse(BaseModel):
    total_rooms: int
    active_fermentation: int
    total_items: int


class MutationResponse(BaseModel):
    """Outcome of a successful mutation."""

    action: str
    room_id: str | None
    room_name: str
    details: str
    log_id: str

    @classmethod
    def from_result(cls, result: MutationResult) -> "MutationResponse":
        return cls(
            action=result.action,
            room_id=result.room_id,
            room_name=result.room_name,
            details=result.details,
            log_id=result.log_id,
        )


# --- Dependencies ---


def get_server(request: Request) -> Server:
    """Get the running server from app state, refusing when unconfigured."""
    server: Server = request.app.state.server
    if server.status == SyncStatus.CONFIG_ERROR:
        raise HTTPException(
            status_code=503,
            detail={"error": SETUP_NOTICE, "error_code": "CONFIGURATION_ERROR"},
        )
    return server


def get_role(x_role: str | None = Header(None, alias="X-Role")) -> UserRole:
    """Session role from the X-Role header (Guest when absent)."""
    if not x_role:
        return UserRole.GUEST
    try:
        return UserRole.from_str(x_role)
    except ValueError:
        raise HTTPException(status_code=400, detail={"error": f"Unknown role: {x_role}"})


async def _settled(server: Server, result: MutationResult) -> MutationResponse:
    await server.store.settle()
    return MutationResponse.from_result(result)


# --- Read Routes ---


@router.get("/rooms", response_model=list[RoomResponse])
async def list_rooms(
    q: str = Query("", description="Filter by room or material name"),
    server: Server = Depends(get_server),
):
    """List rooms, optionally filtered by a case-insensitive query."""
    return [RoomResponse.from_room(room) for room in server.views.filter(q)]


@router.get("/stats", response_model=StatsResponse)
async def get_stats(server: Server = Depends(get_server)):
    return server.views.stats().to_dict()


@router.get("/materials", response_model=list[str])
async def get_materials(server: Server = Depends(get_server)):
    """Catalog of known materials for autocomplete."""
    return server.views.materials()


@router.get("/logs", response_model=list[LogResponse])
async def list_logs(
    limit: int = Query(100, ge=1, le=1000),
    server: Server = Depends(get_server),
):
    """Audit entries, newest first."""
    return [LogResponse.from_entry(entry) for entry in server.views.logs(limit)]


# --- Mutation Routes ---


@router.post("/rooms", response_model=MutationResponse, status_code=201)
async def add_room(
    body: AddRoomRequest,
    role: UserRole = Depends(get_role),
    server: Server = Depends(get_server),
):
    result = await server.service.add_room(role, body.name)
    return await _settled(server, result)


@router.put("/rooms/{room_id}/name", response_model=MutationResponse)
async def rename_room(
    room_id: str,
    body: RenameRoomRequest,
    role: UserRole = Depends(get_role),
    server: Server = Depends(get_server),
):
    result = await server.service.rename_room(role, room_id, body.name)
    return await _settled(server, result)


@router.put("/rooms/{room_id}/temperature", response_model=MutationResponse)
async def update_temperature(
    room_id: str,
    body: TemperatureRequest,
    role: UserRole = Depends(get_role),
    server: Server = Depends(get_server),
):
    result = await server.service.update_temperature(role, room_id, body.temperature)
    return await _settled(server, result)


@router.post("/rooms/{room_id}/stock", response_model=MutationResponse)
async def adjust_stock(
    room_id: str,
    body: StockRequest,
    role: UserRole = Depends(get_role),
    server: Server = Depends(get_server),
):
    result = await server.service.adjust_stock(role, room_id, body.material, body.delta)
    return await _settled(server, result)


@router.post("/rooms/{room_id}/fermentation/toggle", response_model=MutationResponse)
async def toggle_fermentation(
    room_id: str,
    role: UserRole = Depends(get_role),
    server: Server = Depends(get_server),
):
    result = await server.service.toggle_fermentation(role, room_id)
    return await _settled(server, result)


def health_payload(server: Server) -> tuple[dict[str, Any], int]:
    """Health body and status code for the current sync status."""
    status = server.status
    if status == SyncStatus.CONFIG_ERROR:
        return {"status": "config_error", "sync": status.value, "notice": SETUP_NOTICE}, 503
    healthy = status == SyncStatus.ACTIVE
    return {"status": "healthy" if healthy else "unavailable", "sync": status.value}, (
        200 if healthy else 503
    )
