"""Tick-driven dispatch loop.

Transport code only queues events (connection opened, record received,
connection closed). ``Dispatcher.tick`` drains the queue and applies each
event to the registry in order, so registry state is only ever mutated
from one place, sequentially.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from lobby_service.application.exceptions import MalformedMessageError, RequestError
from lobby_service.application.ports.connection import Connection
from lobby_service.domain.value_objects.enums import ActionCode
from lobby_service.domain.value_objects.ids import ClientId, RoomId
from lobby_service.infrastructure.wire import protocol
from lobby_service.infrastructure.wire.framing import frame
from lobby_service.infrastructure.wire.protocol import Envelope
from lobby_service.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Opened:
    connection: Connection


@dataclass(frozen=True, slots=True)
class _Received:
    connection: Connection
    record: bytes


@dataclass(frozen=True, slots=True)
class _Closed:
    connection: Connection


_Event = _Opened | _Received | _Closed


@dataclass(slots=True)
class DispatchContext:
    """What a handler may see and do while handling one envelope."""

    registry: SessionRegistry
    sender_id: ClientId
    relays: list[tuple[ClientId, Envelope]] = field(default_factory=list)

    def relay(self, recipient_id: ClientId, envelope: Envelope) -> None:
        self.relays.append((recipient_id, envelope))


Handler = Callable[[DispatchContext, Envelope], Envelope | None]


# --- handlers ---

def _disconnect(ctx: DispatchContext, env: Envelope) -> None:
    ctx.registry.disconnect(ctx.sender_id)
    return None


def _register_room(ctx: DispatchContext, env: Envelope) -> Envelope:
    payload = protocol.parse_payload(env, protocol.RegisterRoomPayload)
    room_id = ctx.registry.register_room(payload.capacity)
    return protocol.success(
        env.action, env.request_id, protocol.RegisterRoomResult(room_id=room_id),
    )


def _join_room(ctx: DispatchContext, env: Envelope) -> Envelope:
    payload = protocol.parse_payload(env, protocol.JoinRoomPayload)
    info = ctx.registry.join_room(ctx.sender_id, payload.room_id)
    return protocol.success(env.action, env.request_id, protocol.RoomInfoPayload.from_info(info))


def _leave_room(ctx: DispatchContext, env: Envelope) -> Envelope:
    ctx.registry.leave_room(ctx.sender_id)
    return protocol.success(env.action, env.request_id)


def _autojoin_room(ctx: DispatchContext, env: Envelope) -> Envelope:
    payload = protocol.parse_payload(env, protocol.AutojoinRoomPayload)
    info = ctx.registry.autojoin_room(ctx.sender_id, payload.capacity)
    return protocol.success(env.action, env.request_id, protocol.RoomInfoPayload.from_info(info))


def _get_room_info(ctx: DispatchContext, env: Envelope) -> Envelope:
    payload = protocol.parse_payload(env, protocol.GetRoomInfoPayload)
    info = ctx.registry.room_info(payload.room_id)
    return protocol.success(env.action, env.request_id, protocol.RoomInfoPayload.from_info(info))


def _get_rooms_info(ctx: DispatchContext, env: Envelope) -> Envelope:
    rooms = [protocol.RoomInfoPayload.from_info(i) for i in ctx.registry.rooms_info()]
    return protocol.success(env.action, env.request_id, protocol.RoomsInfoPayload(rooms_info=rooms))


def _set_room_attributes(ctx: DispatchContext, env: Envelope) -> Envelope:
    payload = protocol.parse_payload(env, protocol.SetRoomAttributesPayload)
    ctx.registry.set_room_attributes(payload.room_id, payload.attributes)
    return protocol.success(env.action, env.request_id)


def _put_room_attribute(ctx: DispatchContext, env: Envelope) -> Envelope:
    payload = protocol.parse_payload(env, protocol.PutRoomAttributePayload)
    ctx.registry.put_room_attribute(payload.room_id, payload.key, payload.value)
    return protocol.success(env.action, env.request_id)


def _set_server_attributes(ctx: DispatchContext, env: Envelope) -> Envelope:
    payload = protocol.parse_payload(env, protocol.SetServerAttributesPayload)
    ctx.registry.set_server_attributes(payload.attributes)
    return protocol.success(env.action, env.request_id)


def _put_server_attribute(ctx: DispatchContext, env: Envelope) -> Envelope:
    payload = protocol.parse_payload(env, protocol.PutServerAttributePayload)
    ctx.registry.put_server_attribute(payload.key, payload.value)
    return protocol.success(env.action, env.request_id)


def _get_server_attributes(ctx: DispatchContext, env: Envelope) -> Envelope:
    attrs = protocol.ServerAttributesResult(attributes=ctx.registry.server_attributes())
    return protocol.success(env.action, env.request_id, attrs)


def _relay_envelope(sender_id: ClientId, message: str) -> Envelope:
    return protocol.success(
        ActionCode.GET_MESSAGE,
        payload=protocol.GetMessagePayload(message=message, sender_id=sender_id),
    )


def _send_message(ctx: DispatchContext, env: Envelope) -> None:
    payload = protocol.parse_payload(env, protocol.SendMessagePayload)
    relay = _relay_envelope(ctx.sender_id, payload.message)
    for recipient in payload.recipients:
        ctx.relay(ClientId(recipient), relay)
    return None


def _broadcast_message(ctx: DispatchContext, env: Envelope) -> None:
    payload = protocol.parse_payload(env, protocol.BroadcastMessagePayload)
    room_id = ctx.registry.room_of(ctx.sender_id)
    if room_id is None:
        logger.debug("Broadcast from client %d outside any room dropped", ctx.sender_id)
        return None
    relay = _relay_envelope(ctx.sender_id, payload.message)
    for member in ctx.registry.room_members(RoomId(room_id)):
        ctx.relay(member, relay)
    return None


HANDLERS: dict[ActionCode, Handler] = {
    ActionCode.DISCONNECT: _disconnect,
    ActionCode.REGISTER_ROOM: _register_room,
    ActionCode.JOIN_ROOM: _join_room,
    ActionCode.LEAVE_ROOM: _leave_room,
    ActionCode.AUTOJOIN_ROOM: _autojoin_room,
    ActionCode.GET_ROOM_INFO: _get_room_info,
    ActionCode.GET_ROOMS_INFO: _get_rooms_info,
    ActionCode.SET_ROOM_ATTRIBUTES: _set_room_attributes,
    ActionCode.PUT_ROOM_ATTRIBUTE: _put_room_attribute,
    ActionCode.SET_SERVER_ATTRIBUTES: _set_server_attributes,
    ActionCode.PUT_SERVER_ATTRIBUTE: _put_server_attribute,
    ActionCode.GET_SERVER_ATTRIBUTES: _get_server_attributes,
    ActionCode.SEND_MESSAGE: _send_message,
    ActionCode.BROADCAST_MESSAGE: _broadcast_message,
}


class Dispatcher:
    """Owns the registry and the inbound event queue."""

    def __init__(self, registry: SessionRegistry | None = None) -> None:
        self.registry = registry or SessionRegistry()
        self._events: deque[_Event] = deque()

    # --- transport side ---

    def connection_opened(self, connection: Connection) -> None:
        self._events.append(_Opened(connection))

    def record_received(self, connection: Connection, record: bytes) -> None:
        self._events.append(_Received(connection, record))

    def connection_closed(self, connection: Connection) -> None:
        self._events.append(_Closed(connection))

    @property
    def pending(self) -> int:
        return len(self._events)

    # --- dispatch ---

    def tick(self) -> int:
        """Apply every queued event. Returns how many were processed."""
        processed = 0
        while self._events:
            event = self._events.popleft()
            processed += 1
            try:
                self._apply(event)
            except Exception:
                logger.exception("Error handling %s", type(event).__name__)
        return processed

    def _apply(self, event: _Event) -> None:
        if isinstance(event, _Opened):
            client_id = self.registry.register_client(event.connection)
            welcome = protocol.success(ActionCode.REGISTER_CLIENT, client_id=client_id)
            self._write(event.connection, welcome)
        elif isinstance(event, _Received):
            self._handle_record(event.connection, event.record)
        else:
            self.registry.disconnect_connection(event.connection)

    def _handle_record(self, connection: Connection, record: bytes) -> None:
        sender_id = self.registry.client_id_for(connection)
        if sender_id is None:
            logger.debug("Record from unregistered connection %s dropped", connection.peer)
            return
        try:
            envelope = protocol.decode(record)
        except MalformedMessageError as exc:
            logger.debug("Dropped record from client %d: %s", sender_id, exc)
            return

        handler = HANDLERS.get(envelope.action)
        if handler is None:
            logger.debug("Client %d sent non-request action %s", sender_id, envelope.action)
            return

        ctx = DispatchContext(registry=self.registry, sender_id=sender_id)
        try:
            response = handler(ctx, envelope)
        except RequestError as exc:
            response = protocol.failure(envelope.action, exc.kind, envelope.request_id)
        except MalformedMessageError as exc:
            logger.debug("Dropped record from client %d: %s", sender_id, exc)
            return

        if response is not None:
            self._write(connection, response)
        for recipient_id, relay in ctx.relays:
            target = self.registry.connection_for(recipient_id)
            if target is None:
                logger.debug("Relay to unknown client %d skipped", recipient_id)
                continue
            self._write(target, relay)

    def _write(self, connection: Connection, envelope: Envelope) -> None:
        try:
            connection.send(frame(protocol.encode(envelope)))
        except OSError:
            logger.warning("Write to %s failed, disconnecting", connection.peer)
            self.registry.disconnect_connection(connection)
