from __future__ import annotations

from dataclasses import dataclass, field

from lobby_service.domain.value_objects.ids import ClientId, RoomId
from lobby_service.domain.value_objects.value import Attributes


@dataclass(frozen=True, slots=True)
class RoomInfo:
    """Point-in-time copy of a room. Later changes to the room are not reflected."""

    room_id: RoomId
    capacity: int
    size: int
    attributes: Attributes = field(default_factory=dict)
    client_ids: tuple[ClientId, ...] = ()

    @property
    def is_full(self) -> bool:
        return self.size == self.capacity

    def __str__(self) -> str:
        return (
            f"Room {self.room_id} (capacity {self.capacity}): "
            f"clients={list(self.client_ids)} attributes={self.attributes}"
        )
