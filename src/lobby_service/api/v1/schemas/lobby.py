from __future__ import annotations

from pydantic import BaseModel, JsonValue

from lobby_service.domain.entities.room_info import RoomInfo


class RoomResponse(BaseModel):
    room_id: int
    capacity: int
    size: int
    is_full: bool
    attributes: dict[str, JsonValue]
    client_ids: list[int]

    @classmethod
    def from_info(cls, info: RoomInfo) -> RoomResponse:
        return cls(
            room_id=info.room_id,
            capacity=info.capacity,
            size=info.size,
            is_full=info.is_full,
            attributes=info.attributes,
            client_ids=list(info.client_ids),
        )


class StatsResponse(BaseModel):
    clients: int
    rooms: int


class AttributesResponse(BaseModel):
    attributes: dict[str, JsonValue]
