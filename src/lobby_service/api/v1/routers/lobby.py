"""Read-only view of lobby state. Mutations only happen over the TCP protocol."""
from __future__ import annotations

from fastapi import APIRouter

from lobby_service.api.deps import RegistryDep
from lobby_service.api.v1.schemas.lobby import AttributesResponse, RoomResponse, StatsResponse

router = APIRouter(prefix="/api/v1/lobby", tags=["lobby"])


@router.get("/rooms", response_model=list[RoomResponse])
async def list_rooms(registry: RegistryDep) -> list[RoomResponse]:
    return [RoomResponse.from_info(info) for info in registry.rooms_info()]


@router.get("/rooms/{room_id}", response_model=RoomResponse)
async def get_room(room_id: int, registry: RegistryDep) -> RoomResponse:
    return RoomResponse.from_info(registry.room_info(room_id))


@router.get("/attributes", response_model=AttributesResponse)
async def get_attributes(registry: RegistryDep) -> AttributesResponse:
    return AttributesResponse(attributes=registry.server_attributes())


@router.get("/stats", response_model=StatsResponse)
async def get_stats(registry: RegistryDep) -> StatsResponse:
    return StatsResponse(clients=registry.client_count, rooms=registry.room_count)
