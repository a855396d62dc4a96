from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lobby_service.api.v1.routers import health, lobby
from lobby_service.application.exceptions import RequestError
from lobby_service.domain.value_objects.enums import ErrorKind
from lobby_service.infrastructure.tcp.server import TcpGameServer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the TCP lobby server on the same event loop as the HTTP API."""
    server = TcpGameServer()
    await server.start()
    app.state.lobby = server

    yield

    await server.stop()
    app.state.lobby = None


def create_app() -> FastAPI:
    app = FastAPI(
        title="Lobby Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(lobby.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestError)
    async def _request_error(_req: Request, exc: RequestError) -> JSONResponse:
        status_code = 404 if exc.kind == ErrorKind.ROOM_NOT_FOUND else 409
        return JSONResponse(status_code=status_code, content={"detail": exc.detail, "error": exc.kind.value})
