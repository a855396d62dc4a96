"""Blocking lobby client.

A background thread keeps reading records off the socket and queueing them
in a Correlator; every public call sends one request and blocks until the
matching response arrives or the request timeout passes.
"""
from __future__ import annotations

import itertools
import logging
import select
import socket
import threading
from types import TracebackType

from lobby_service.application.exceptions import (
    ConnectionClosedError,
    ConnectionFailureError,
    MalformedMessageError,
    RegistrationFailureError,
    RequestError,
    RequestTimeoutError,
)
from lobby_service.client.correlator import Correlator
from lobby_service.config import settings
from lobby_service.domain.entities.message import Message
from lobby_service.domain.entities.room_info import RoomInfo
from lobby_service.domain.value_objects.enums import ActionCode, Status
from lobby_service.domain.value_objects.ids import ClientId, RoomId
from lobby_service.domain.value_objects.value import Attributes, Value
from lobby_service.infrastructure.wire import protocol
from lobby_service.infrastructure.wire.framing import RecordBuffer, frame
from lobby_service.infrastructure.wire.protocol import Envelope, WireModel

logger = logging.getLogger(__name__)


class GameClient:
    """Connects on construction and registers with the server.

    Raises ConnectionFailureError if the server cannot be reached and
    RegistrationFailureError if it does not hand out a client id.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int | None = None,
        *,
        request_timeout: float | None = None,
        poll_interval: float | None = None,
        connect_timeout: float | None = None,
        read_chunk_size: int | None = None,
    ) -> None:
        self._request_timeout = request_timeout if request_timeout is not None else settings.CLIENT_REQUEST_TIMEOUT
        poll_interval = poll_interval if poll_interval is not None else settings.CLIENT_POLL_INTERVAL
        connect_timeout = connect_timeout if connect_timeout is not None else settings.CLIENT_CONNECT_TIMEOUT
        self._chunk = read_chunk_size or settings.READ_CHUNK_SIZE
        port = port if port is not None else settings.TCP_PORT

        try:
            self._sock = socket.create_connection((host, port), timeout=connect_timeout)
        except OSError as exc:
            raise ConnectionFailureError(f"cannot connect to {host}:{port}: {exc}") from exc
        self._sock.settimeout(None)
        self._poll_interval = poll_interval
        self._stopped = False

        self._buffer = RecordBuffer()
        self._correlator = Correlator(poll_interval)
        self._send_lock = threading.Lock()
        self._read_lock = threading.Lock()
        self._call_lock = threading.Lock()
        self._request_ids = itertools.count(1)
        self._client_id: ClientId | None = None

        self._poller = threading.Thread(
            target=self._poll_loop, name=f"lobby-client-poller-{host}:{port}", daemon=True,
        )
        self._poller.start()
        self._register(connect_timeout)

    def _register(self, timeout: float) -> None:
        try:
            env = self._correlator.wait_for(ActionCode.REGISTER_CLIENT, timeout)
        except (RequestTimeoutError, ConnectionClosedError) as exc:
            self._shutdown()
            raise RegistrationFailureError(f"no registration from server: {exc}") from exc
        if not env.ok or env.client_id is None:
            self._shutdown()
            raise RegistrationFailureError("server refused to register this client")
        self._client_id = ClientId(env.client_id)
        logger.info("Registered with lobby server as client %d", self._client_id)

    # --- lifecycle ---

    @property
    def client_id(self) -> ClientId:
        assert self._client_id is not None
        return self._client_id

    @property
    def connected(self) -> bool:
        return not self._correlator.closed

    def disconnect(self) -> None:
        if self._stopped:
            return
        if not self._correlator.closed:
            try:
                self._send(protocol.request(ActionCode.DISCONNECT, self._client_id))
            except ConnectionClosedError:
                pass
        self._shutdown()

    def _shutdown(self) -> None:
        self._stopped = True
        self._correlator.close()
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        if self._poller is not threading.current_thread():
            self._poller.join()
        self._sock.close()

    def __enter__(self) -> GameClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.disconnect()

    # --- transport ---

    def poll(self) -> int:
        """Read once from the socket and queue any complete records.

        Returns the number of envelopes queued. Waits at most the poll
        interval when nothing is available. Safe to call while the
        background poller runs; reads are serialized.
        """
        with self._read_lock:
            return self._read_once()

    def _read_once(self) -> int:
        if self._correlator.closed:
            return 0
        try:
            readable, _, _ = select.select([self._sock], [], [], self._poll_interval)
            if not readable:
                return 0
            data = self._sock.recv(self._chunk)
        except (OSError, ValueError):
            self._correlator.close()
            return 0
        if not data:
            logger.info("Lobby server closed the connection")
            self._correlator.close()
            return 0

        self._buffer.feed(data)
        queued = 0
        for record in self._buffer.drain():
            try:
                env = protocol.decode(record)
            except MalformedMessageError as exc:
                logger.debug("Dropped record from server: %s", exc)
                continue
            self._correlator.enqueue(env)
            queued += 1
        return queued

    def _poll_loop(self) -> None:
        while not self._correlator.closed:
            self.poll()

    def _send(self, envelope: Envelope) -> None:
        if self._correlator.closed:
            raise ConnectionClosedError("client is disconnected")
        data = frame(protocol.encode(envelope))
        try:
            with self._send_lock:
                self._sock.sendall(data)
        except OSError as exc:
            self._correlator.close()
            raise ConnectionClosedError(f"send failed: {exc}") from exc

    def _call(self, action: ActionCode, payload: WireModel | None = None) -> Envelope:
        with self._call_lock:
            request_id = next(self._request_ids)
            self._send(protocol.request(action, self._client_id, request_id, payload))
            env = self._correlator.wait_for(action, self._request_timeout, request_id)
        if env.status == Status.ERROR:
            if env.error is None:
                raise MalformedMessageError(f"{action} failed without an error kind")
            raise RequestError(env.error)
        return env

    # --- rooms ---

    def create_room(self, capacity: int) -> RoomId:
        payload = protocol.build_payload(protocol.RegisterRoomPayload, capacity=capacity)
        env = self._call(ActionCode.REGISTER_ROOM, payload)
        return RoomId(protocol.parse_payload(env, protocol.RegisterRoomResult).room_id)

    def join_room(self, room_id: int) -> RoomInfo:
        payload = protocol.build_payload(protocol.JoinRoomPayload, room_id=room_id)
        env = self._call(ActionCode.JOIN_ROOM, payload)
        return protocol.parse_payload(env, protocol.RoomInfoPayload).to_info()

    def leave_room(self) -> None:
        self._call(ActionCode.LEAVE_ROOM)

    def autojoin_room(self, capacity: int) -> RoomInfo:
        payload = protocol.build_payload(protocol.AutojoinRoomPayload, capacity=capacity)
        env = self._call(ActionCode.AUTOJOIN_ROOM, payload)
        return protocol.parse_payload(env, protocol.RoomInfoPayload).to_info()

    def get_room_info(self, room_id: int) -> RoomInfo:
        payload = protocol.build_payload(protocol.GetRoomInfoPayload, room_id=room_id)
        env = self._call(ActionCode.GET_ROOM_INFO, payload)
        return protocol.parse_payload(env, protocol.RoomInfoPayload).to_info()

    def get_rooms_info(self) -> list[RoomInfo]:
        env = self._call(ActionCode.GET_ROOMS_INFO)
        return [p.to_info() for p in protocol.parse_payload(env, protocol.RoomsInfoPayload).rooms_info]

    # --- attributes ---

    def set_room_attributes(self, room_id: int, attributes: Attributes) -> None:
        self._call(
            ActionCode.SET_ROOM_ATTRIBUTES,
            protocol.build_payload(protocol.SetRoomAttributesPayload, room_id=room_id, attributes=attributes),
        )

    def put_room_attribute(self, room_id: int, key: str, value: Value) -> None:
        self._call(
            ActionCode.PUT_ROOM_ATTRIBUTE,
            protocol.build_payload(protocol.PutRoomAttributePayload, room_id=room_id, key=key, value=value),
        )

    def set_server_attributes(self, attributes: Attributes) -> None:
        payload = protocol.build_payload(protocol.SetServerAttributesPayload, attributes=attributes)
        self._call(ActionCode.SET_SERVER_ATTRIBUTES, payload)

    def put_server_attribute(self, key: str, value: Value) -> None:
        payload = protocol.build_payload(protocol.PutServerAttributePayload, key=key, value=value)
        self._call(ActionCode.PUT_SERVER_ATTRIBUTE, payload)

    def get_server_attributes(self) -> Attributes:
        env = self._call(ActionCode.GET_SERVER_ATTRIBUTES)
        return protocol.parse_payload(env, protocol.ServerAttributesResult).attributes

    # --- messages ---

    def send_message(self, recipients: list[int], message: str) -> None:
        payload = protocol.build_payload(protocol.SendMessagePayload, recipients=list(recipients), message=message)
        self._send(protocol.request(ActionCode.SEND_MESSAGE, self._client_id, payload=payload))

    def broadcast_message(self, message: str) -> None:
        payload = protocol.build_payload(protocol.BroadcastMessagePayload, message=message)
        self._send(protocol.request(ActionCode.BROADCAST_MESSAGE, self._client_id, payload=payload))

    def get_message(self, timeout: float | None = None) -> Message | None:
        """Oldest relayed message, or None.

        Without a timeout this never blocks; with one it waits up to that long.
        """
        if timeout is None:
            env = self._correlator.poll(ActionCode.GET_MESSAGE)
        else:
            try:
                env = self._correlator.wait_for(ActionCode.GET_MESSAGE, timeout)
            except (RequestTimeoutError, ConnectionClosedError):
                return None
        return _to_message(env) if env is not None else None

    def poll_messages(self) -> list[Message]:
        """Every queued relayed message, oldest first. Unparseable ones are skipped."""
        messages: list[Message] = []
        while (env := self._correlator.poll(ActionCode.GET_MESSAGE)) is not None:
            try:
                messages.append(_to_message(env))
            except MalformedMessageError as exc:
                logger.debug("Dropped relayed message: %s", exc)
        return messages


def _to_message(env: Envelope) -> Message:
    payload = protocol.parse_payload(env, protocol.GetMessagePayload)
    sender = ClientId(payload.sender_id) if payload.sender_id is not None else None
    return Message(sender_id=sender, body=payload.message)
