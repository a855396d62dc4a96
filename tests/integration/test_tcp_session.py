"""End-to-end tests: asyncio TCP server on loopback, blocking GameClient in worker threads."""
from __future__ import annotations

import asyncio
import socket
import time

import pytest
import pytest_asyncio

from lobby_service.application.exceptions import (
    ConnectionClosedError,
    ConnectionFailureError,
    MalformedMessageError,
    RegistrationFailureError,
    RequestError,
    RequestTimeoutError,
)
from lobby_service.client.game_client import GameClient
from lobby_service.domain.value_objects.enums import ActionCode, ErrorKind
from lobby_service.infrastructure.tcp.server import TcpGameServer
from lobby_service.infrastructure.wire import protocol
from lobby_service.infrastructure.wire.framing import frame


@pytest_asyncio.fixture
async def server():
    srv = TcpGameServer(host="127.0.0.1", port=0, tick_interval=0.005)
    await srv.start()
    try:
        yield srv
    finally:
        await srv.stop()


async def open_client(port: int, **kwargs) -> GameClient:
    kwargs.setdefault("request_timeout", 2.0)
    return await asyncio.to_thread(GameClient, "127.0.0.1", port, **kwargs)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_client_registers_and_creates_room(server):
    client = await open_client(server.port)
    try:
        room_id = await asyncio.to_thread(client.create_room, 2)
        info = await asyncio.to_thread(client.join_room, room_id)
    finally:
        await asyncio.to_thread(client.disconnect)

    assert client.client_id == 0
    assert info.room_id == room_id
    assert info.client_ids == (0,)
    assert not client.connected


@pytest.mark.asyncio
async def test_room_full_and_not_found_surface_as_request_errors(server):
    a, b, c = [await open_client(server.port) for _ in range(3)]
    try:
        room_id = await asyncio.to_thread(a.create_room, 2)
        await asyncio.to_thread(a.join_room, room_id)
        info = await asyncio.to_thread(b.join_room, room_id)
        assert info.is_full

        with pytest.raises(RequestError) as full:
            await asyncio.to_thread(c.join_room, room_id)
        with pytest.raises(RequestError) as missing:
            await asyncio.to_thread(c.get_room_info, 99)
        with pytest.raises(RequestError) as already:
            await asyncio.to_thread(a.autojoin_room, 4)
    finally:
        for client in (a, b, c):
            await asyncio.to_thread(client.disconnect)

    assert full.value.kind == ErrorKind.ROOM_FULL
    assert missing.value.kind == ErrorKind.ROOM_NOT_FOUND
    assert already.value.kind == ErrorKind.ALREADY_IN_ROOM


@pytest.mark.asyncio
async def test_zero_capacity_room_and_invalid_arguments(server):
    client = await open_client(server.port)
    try:
        room_id = await asyncio.to_thread(client.create_room, 0)
        info = await asyncio.to_thread(client.get_room_info, room_id)
        with pytest.raises(RequestError) as full:
            await asyncio.to_thread(client.join_room, room_id)
        with pytest.raises(MalformedMessageError):
            await asyncio.to_thread(client.create_room, -1)
        assert client.connected
    finally:
        await asyncio.to_thread(client.disconnect)

    assert (info.capacity, info.size, info.is_full) == (0, 0, True)
    assert full.value.kind == ErrorKind.ROOM_FULL


@pytest.mark.asyncio
async def test_attributes_round_trip(server):
    client = await open_client(server.port)
    try:
        info = await asyncio.to_thread(client.autojoin_room, 3)
        await asyncio.to_thread(client.set_room_attributes, info.room_id, {"map": "arena", "round": 1})
        await asyncio.to_thread(client.put_room_attribute, info.room_id, "round", 2)
        room = await asyncio.to_thread(client.get_room_info, info.room_id)

        await asyncio.to_thread(client.set_server_attributes, {"season": 7})
        await asyncio.to_thread(client.put_server_attribute, "motd", "gl hf")
        server_attrs = await asyncio.to_thread(client.get_server_attributes)
        rooms = await asyncio.to_thread(client.get_rooms_info)
        await asyncio.to_thread(client.leave_room)
        await asyncio.to_thread(client.leave_room)
    finally:
        await asyncio.to_thread(client.disconnect)

    assert room.attributes == {"map": "arena", "round": 2}
    assert server_attrs == {"season": 7, "motd": "gl hf"}
    assert [r.room_id for r in rooms] == [info.room_id]
    assert server.dispatcher.registry.room_info(info.room_id).size == 0


@pytest.mark.asyncio
async def test_broadcast_and_direct_messages(server):
    a, b, d = [await open_client(server.port) for _ in range(3)]
    try:
        room_id = await asyncio.to_thread(a.create_room, 3)
        await asyncio.to_thread(a.join_room, room_id)
        await asyncio.to_thread(b.join_room, room_id)

        await asyncio.to_thread(a.broadcast_message, "hi")
        got_a = await asyncio.to_thread(a.get_message, 2.0)
        got_b = await asyncio.to_thread(b.get_message, 2.0)

        await asyncio.to_thread(b.send_message, [d.client_id, 12345], "psst")
        got_d = await asyncio.to_thread(d.get_message, 2.0)
        await asyncio.sleep(0.1)
    finally:
        for client in (a, b, d):
            await asyncio.to_thread(client.disconnect)

    assert (got_a.body, got_a.sender_id) == ("hi", a.client_id)
    assert (got_b.body, got_b.sender_id) == ("hi", a.client_id)
    assert (got_d.body, got_d.sender_id) == ("psst", b.client_id)
    assert a.poll_messages() == []
    assert b.poll_messages() == []
    assert d.poll_messages() == []


@pytest.mark.asyncio
async def test_abrupt_close_removes_client_from_room(server):
    client = await open_client(server.port)
    await asyncio.to_thread(client.autojoin_room, 2)
    registry = server.dispatcher.registry

    # close the socket without sending DISCONNECT
    await asyncio.to_thread(client._shutdown)

    await wait_until(lambda: registry.client_count == 0)
    assert registry.room_info(0).size == 0


@pytest.mark.asyncio
async def test_server_stop_fails_pending_calls(server):
    client = await open_client(server.port)
    await server.stop()

    await wait_until(lambda: not client.connected)
    with pytest.raises(ConnectionClosedError):
        await asyncio.to_thread(client.get_rooms_info)
    await asyncio.to_thread(client.disconnect)


@pytest.mark.asyncio
async def test_silent_server_times_out_after_deadline():
    async def welcome_then_ignore(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.write(frame(protocol.encode(protocol.success(ActionCode.REGISTER_CLIENT, client_id=0))))
        await writer.drain()
        while await reader.read(1024):
            pass
        writer.close()

    silent = await asyncio.start_server(welcome_then_ignore, "127.0.0.1", 0)
    port = silent.sockets[0].getsockname()[1]
    try:
        client = await open_client(port, request_timeout=0.2)
        started = time.monotonic()
        with pytest.raises(RequestTimeoutError):
            await asyncio.to_thread(client.get_rooms_info)
        elapsed = time.monotonic() - started
        await asyncio.to_thread(client.disconnect)
    finally:
        silent.close()
        await silent.wait_closed()

    assert elapsed >= 0.2


@pytest.mark.asyncio
async def test_handshake_without_welcome_fails_registration():
    async def mute(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        while await reader.read(1024):
            pass
        writer.close()

    silent = await asyncio.start_server(mute, "127.0.0.1", 0)
    port = silent.sockets[0].getsockname()[1]
    try:
        with pytest.raises(RegistrationFailureError):
            await open_client(port, connect_timeout=0.2)
    finally:
        silent.close()
        await silent.wait_closed()


@pytest.mark.asyncio
async def test_unreachable_server_is_a_connection_failure():
    with socket.socket() as probe:
        probe.bind(("127.0.0.1", 0))
        port = probe.getsockname()[1]

    with pytest.raises(ConnectionFailureError):
        await open_client(port, connect_timeout=0.5)


@pytest.mark.asyncio
async def test_oversized_record_drops_the_connection():
    srv = TcpGameServer(host="127.0.0.1", port=0, tick_interval=0.005, max_record_bytes=16)
    await srv.start()
    try:
        reader, writer = await asyncio.open_connection("127.0.0.1", srv.port)
        welcome = await reader.readuntil(b"\x07")
        assert protocol.decode(welcome[:-1]).action == ActionCode.REGISTER_CLIENT

        writer.write(b"x" * 64)
        await writer.drain()

        assert await reader.read() == b""
        await wait_until(lambda: srv.dispatcher.registry.client_count == 0)
        writer.close()
    finally:
        await srv.stop()


async def _serve_once(handler) -> tuple[asyncio.Server, int]:
    srv = await asyncio.start_server(handler, "127.0.0.1", 0)
    return srv, srv.sockets[0].getsockname()[1]


def _relay(body: str) -> bytes:
    return frame(protocol.encode(protocol.success(ActionCode.GET_MESSAGE, message=body, senderId=0)))


@pytest.mark.asyncio
async def test_manual_poll_alongside_background_poller_keeps_records_in_order():
    count = 500

    async def welcome_then_flood(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.write(frame(protocol.encode(protocol.success(ActionCode.REGISTER_CLIENT, client_id=0))))
        await writer.drain()
        await reader.readuntil(b"\x07")
        writer.write(b"".join(_relay(str(i)) for i in range(count)))
        await writer.drain()
        while await reader.read(1024):
            pass
        writer.close()

    srv, port = await _serve_once(welcome_then_flood)
    try:
        client = await open_client(port, read_chunk_size=7)

        def pump() -> list[str]:
            received: list[str] = []
            client.broadcast_message("go")
            deadline = time.monotonic() + 5.0
            while len(received) < count and time.monotonic() < deadline:
                client.poll()
                received.extend(m.body for m in client.poll_messages())
            return received

        received = await asyncio.to_thread(pump)
        await asyncio.to_thread(client.disconnect)
    finally:
        srv.close()
        await srv.wait_closed()

    assert received == [str(i) for i in range(count)]


@pytest.mark.asyncio
async def test_poll_messages_skips_unparseable_relays():
    async def welcome_then_relays(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.write(frame(protocol.encode(protocol.success(ActionCode.REGISTER_CLIENT, client_id=0))))
        writer.write(_relay("first"))
        writer.write(frame(b'{"action":"GET_MESSAGE","status":"success"}'))
        writer.write(_relay("second"))
        await writer.drain()
        while await reader.read(1024):
            pass
        writer.close()

    srv, port = await _serve_once(welcome_then_relays)
    try:
        client = await open_client(port)
        await wait_until(lambda: client._correlator.pending(ActionCode.GET_MESSAGE) == 3)
        messages = client.poll_messages()
        await asyncio.to_thread(client.disconnect)
    finally:
        srv.close()
        await srv.wait_closed()

    assert [m.body for m in messages] == ["first", "second"]
    assert client.poll_messages() == []
