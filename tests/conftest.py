"""Shared test fixtures."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest

from lobby_service.domain.value_objects.enums import ActionCode
from lobby_service.domain.value_objects.ids import ClientId
from lobby_service.infrastructure.wire import protocol
from lobby_service.infrastructure.wire.framing import RecordBuffer
from lobby_service.infrastructure.wire.protocol import Envelope
from lobby_service.services.dispatcher import Dispatcher
from lobby_service.services.session_registry import SessionRegistry


@dataclass(eq=False)
class FakeConnection:
    """In-memory Connection that records everything written to it."""

    name: str = "fake"
    fail_writes: bool = False
    closed: bool = False
    close_calls: int = 0
    _buffer: RecordBuffer = field(default_factory=RecordBuffer)
    _received: list[Envelope] = field(default_factory=list)

    @property
    def peer(self) -> str:
        return self.name

    def send(self, record: bytes) -> None:
        if self.fail_writes:
            raise ConnectionResetError("write failed")
        self._buffer.feed(record)
        for raw in self._buffer.drain():
            self._received.append(protocol.decode(raw))

    def close(self) -> None:
        self.closed = True
        self.close_calls += 1

    def take(self) -> list[Envelope]:
        """Return and forget everything received so far."""
        out, self._received = self._received, []
        return out

    def last(self) -> Envelope:
        return self.take()[-1]


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def dispatcher(registry: SessionRegistry) -> Dispatcher:
    return Dispatcher(registry)


def connect(dispatcher: Dispatcher, name: str = "fake") -> tuple[FakeConnection, ClientId]:
    conn = FakeConnection(name=name)
    dispatcher.connection_opened(conn)
    dispatcher.tick()
    welcome = conn.last()
    assert welcome.action == ActionCode.REGISTER_CLIENT
    assert welcome.client_id is not None
    return conn, ClientId(welcome.client_id)


def send(
    dispatcher: Dispatcher,
    conn: FakeConnection,
    action: ActionCode,
    request_id: int | None = None,
    **fields: Any,
) -> None:
    env = Envelope(action=action, request_id=request_id, **fields)
    dispatcher.record_received(conn, protocol.encode(env))
    dispatcher.tick()
