from __future__ import annotations

from dataclasses import dataclass

from lobby_service.application.ports.connection import Connection
from lobby_service.domain.value_objects.ids import ClientId, RoomId


@dataclass(slots=True)
class ClientSession:
    id: ClientId
    connection: Connection
    room_id: RoomId | None = None
