"""Authoritative lobby state: clients, rooms, memberships and attributes.

Every method is synchronous and performs no I/O other than closing a
connection on disconnect. The dispatcher is the only caller that mutates it,
one event at a time.
"""
from __future__ import annotations

import copy
import logging

from lobby_service.application.exceptions import RequestError
from lobby_service.application.ports.connection import Connection
from lobby_service.domain.entities.client_session import ClientSession
from lobby_service.domain.entities.room import Room
from lobby_service.domain.entities.room_info import RoomInfo
from lobby_service.domain.value_objects.enums import ErrorKind
from lobby_service.domain.value_objects.ids import ClientId, RoomId
from lobby_service.domain.value_objects.value import Attributes, Value

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self) -> None:
        self._clients: dict[ClientId, ClientSession] = {}
        self._by_connection: dict[Connection, ClientId] = {}
        # Insertion order is the autojoin scan order. Rooms are never removed.
        self._rooms: dict[RoomId, Room] = {}
        self._attributes: Attributes = {}
        self._next_client_id = 0
        self._next_room_id = 0

    # --- clients ---

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def register_client(self, connection: Connection) -> ClientId:
        client_id = ClientId(self._next_client_id)
        self._next_client_id += 1
        self._clients[client_id] = ClientSession(id=client_id, connection=connection)
        self._by_connection[connection] = client_id
        logger.info("Client %d registered (%s)", client_id, connection.peer)
        return client_id

    def client_id_for(self, connection: Connection) -> ClientId | None:
        return self._by_connection.get(connection)

    def connection_for(self, client_id: ClientId) -> Connection | None:
        session = self._clients.get(client_id)
        return session.connection if session else None

    def room_of(self, client_id: ClientId) -> RoomId | None:
        session = self._clients.get(client_id)
        return session.room_id if session else None

    def disconnect(self, client_id: ClientId) -> bool:
        """Forget a client and drop it from its room.

        Returns False when the client was already gone, so an explicit
        DISCONNECT followed by the transport noticing the close cleans up once.
        """
        session = self._clients.pop(client_id, None)
        if session is None:
            return False
        self._by_connection.pop(session.connection, None)
        if session.room_id is not None:
            self._rooms[session.room_id].remove_member(client_id)
        session.connection.close()
        logger.info("Client %d disconnected", client_id)
        return True

    def disconnect_connection(self, connection: Connection) -> bool:
        client_id = self._by_connection.get(connection)
        if client_id is None:
            return False
        return self.disconnect(client_id)

    # --- rooms ---

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def _get_room(self, room_id: int) -> Room:
        room = self._rooms.get(RoomId(room_id))
        if room is None:
            raise RequestError(ErrorKind.ROOM_NOT_FOUND, f"room {room_id} not found")
        return room

    def _session(self, client_id: ClientId) -> ClientSession:
        try:
            return self._clients[client_id]
        except KeyError:
            raise LookupError(f"client {client_id} is not registered") from None

    def register_room(self, capacity: int) -> RoomId:
        room_id = RoomId(self._next_room_id)
        self._next_room_id += 1
        self._rooms[room_id] = Room(id=room_id, capacity=capacity)
        logger.info("Room %d created (capacity=%d)", room_id, capacity)
        return room_id

    def join_room(self, client_id: ClientId, room_id: int) -> RoomInfo:
        session = self._session(client_id)
        if session.room_id is not None:
            raise RequestError(ErrorKind.ALREADY_IN_ROOM, f"client {client_id} is in room {session.room_id}")
        room = self._get_room(room_id)
        room.add_member(client_id)
        session.room_id = room.id
        return room.snapshot()

    def leave_room(self, client_id: ClientId) -> None:
        session = self._session(client_id)
        if session.room_id is None:
            return
        self._rooms[session.room_id].remove_member(client_id)
        session.room_id = None

    def autojoin_room(self, client_id: ClientId, capacity: int) -> RoomInfo:
        """Join the first non-full room in creation order, else create one."""
        session = self._session(client_id)
        if session.room_id is not None:
            raise RequestError(ErrorKind.ALREADY_IN_ROOM, f"client {client_id} is in room {session.room_id}")
        room = next((r for r in self._rooms.values() if not r.is_full), None)
        if room is None:
            if capacity < 1:
                raise RequestError(ErrorKind.ROOM_FULL, "a room of capacity 0 cannot be joined")
            room = self._rooms[self.register_room(capacity)]
        room.add_member(client_id)
        session.room_id = room.id
        return room.snapshot()

    def room_info(self, room_id: int) -> RoomInfo:
        return self._get_room(room_id).snapshot()

    def rooms_info(self) -> list[RoomInfo]:
        return [room.snapshot() for room in self._rooms.values()]

    def room_members(self, room_id: RoomId) -> tuple[ClientId, ...]:
        return self._get_room(room_id).members

    def set_room_attributes(self, room_id: int, attributes: Attributes) -> None:
        self._get_room(room_id).set_attributes(copy.deepcopy(attributes))

    def put_room_attribute(self, room_id: int, key: str, value: Value) -> None:
        self._get_room(room_id).put_attribute(key, copy.deepcopy(value))

    # --- server attributes ---

    def set_server_attributes(self, attributes: Attributes) -> None:
        self._attributes = copy.deepcopy(attributes)

    def put_server_attribute(self, key: str, value: Value) -> None:
        self._attributes[key] = copy.deepcopy(value)

    def server_attributes(self) -> Attributes:
        return copy.deepcopy(self._attributes)

    def client_ids(self) -> list[ClientId]:
        return list(self._clients)
