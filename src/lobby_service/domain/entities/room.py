from __future__ import annotations

import copy
from dataclasses import dataclass, field

from lobby_service.application.exceptions import RequestError
from lobby_service.domain.entities.room_info import RoomInfo
from lobby_service.domain.value_objects.enums import ErrorKind
from lobby_service.domain.value_objects.ids import ClientId, RoomId
from lobby_service.domain.value_objects.value import Attributes, Value


@dataclass(slots=True)
class Room:
    """A capacity-bounded set of clients plus a free-form attribute dictionary."""

    id: RoomId
    capacity: int
    attributes: Attributes = field(default_factory=dict)
    # dict keeps join order for snapshots
    _members: dict[ClientId, None] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self._members)

    @property
    def is_full(self) -> bool:
        return self.size >= self.capacity

    @property
    def members(self) -> tuple[ClientId, ...]:
        return tuple(self._members)

    def has_member(self, client_id: ClientId) -> bool:
        return client_id in self._members

    def add_member(self, client_id: ClientId) -> None:
        if client_id in self._members:
            return
        if self.is_full:
            raise RequestError(ErrorKind.ROOM_FULL, f"room {self.id} is full")
        self._members[client_id] = None

    def remove_member(self, client_id: ClientId) -> None:
        self._members.pop(client_id, None)

    def set_attributes(self, attributes: Attributes) -> None:
        self.attributes = dict(attributes)

    def put_attribute(self, key: str, value: Value) -> None:
        self.attributes[key] = value

    def snapshot(self) -> RoomInfo:
        return RoomInfo(
            room_id=self.id,
            capacity=self.capacity,
            size=self.size,
            attributes=copy.deepcopy(self.attributes),
            client_ids=self.members,
        )
