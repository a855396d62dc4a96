"""asyncio TCP listener that feeds a Dispatcher and drives its tick."""
from __future__ import annotations

import asyncio
import logging

from lobby_service.config import settings
from lobby_service.infrastructure.wire.framing import FramingError, RecordBuffer
from lobby_service.services.dispatcher import Dispatcher

logger = logging.getLogger(__name__)


class StreamConnection:
    """Implements application.ports.connection.Connection over a StreamWriter."""

    def __init__(self, writer: asyncio.StreamWriter) -> None:
        self._writer = writer
        peername = writer.get_extra_info("peername")
        self._peer = f"{peername[0]}:{peername[1]}" if peername else "unknown"
        self._dirty = False

    @property
    def peer(self) -> str:
        return self._peer

    @property
    def dirty(self) -> bool:
        return self._dirty

    def send(self, record: bytes) -> None:
        if self._writer.is_closing():
            raise ConnectionResetError(f"connection to {self._peer} is closed")
        self._writer.write(record)
        self._dirty = True

    def close(self) -> None:
        if not self._writer.is_closing():
            self._writer.close()

    async def drain(self) -> None:
        self._dirty = False
        await self._writer.drain()


class TcpGameServer:
    def __init__(
        self,
        dispatcher: Dispatcher | None = None,
        *,
        host: str | None = None,
        port: int | None = None,
        tick_interval: float | None = None,
        read_chunk_size: int | None = None,
        max_record_bytes: int | None = None,
    ) -> None:
        self.dispatcher = dispatcher or Dispatcher()
        self._host = host if host is not None else settings.TCP_HOST
        self._port = port if port is not None else settings.TCP_PORT
        self._tick_interval = tick_interval if tick_interval is not None else settings.TICK_INTERVAL
        self._chunk = read_chunk_size or settings.READ_CHUNK_SIZE
        self._max_record = max_record_bytes or settings.MAX_RECORD_BYTES
        self._server: asyncio.Server | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._connections: set[StreamConnection] = set()

    @property
    def serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def port(self) -> int:
        """The bound port; differs from the configured one when that was 0."""
        if self._server is None or not self._server.sockets:
            return self._port
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, self._host, self._port)
        self._tick_task = asyncio.create_task(self._run_ticks(), name="lobby-dispatch-tick")
        logger.info("Lobby TCP server listening on %s:%d (tick=%.3fs)", self._host, self.port, self._tick_interval)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        if self._tick_task:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
        self.dispatcher.tick()
        for client_id in self.dispatcher.registry.client_ids():
            self.dispatcher.registry.disconnect(client_id)
        await self._flush()
        await self._server.wait_closed()
        self._server = None
        logger.info("Lobby TCP server stopped")

    async def _run_ticks(self) -> None:
        while True:
            try:
                self.dispatcher.tick()
            except Exception:
                logger.exception("Dispatch tick failed")
            await self._flush()
            await asyncio.sleep(self._tick_interval)

    async def _flush(self) -> None:
        dirty = [c for c in self._connections if c.dirty]
        if dirty:
            await asyncio.gather(*(c.drain() for c in dirty), return_exceptions=True)

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        conn = StreamConnection(writer)
        self._connections.add(conn)
        self.dispatcher.connection_opened(conn)
        buffer = RecordBuffer(self._max_record)
        try:
            while True:
                data = await reader.read(self._chunk)
                if not data:
                    break
                buffer.feed(data)
                for record in buffer.drain():
                    self.dispatcher.record_received(conn, record)
        except FramingError as exc:
            logger.warning("Dropping %s: %s", conn.peer, exc)
        except OSError:
            logger.debug("Connection %s reset", conn.peer, exc_info=True)
        finally:
            self._connections.discard(conn)
            self.dispatcher.connection_closed(conn)
            conn.close()
