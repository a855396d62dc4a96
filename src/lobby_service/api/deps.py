"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from lobby_service.infrastructure.tcp.server import TcpGameServer
from lobby_service.services.session_registry import SessionRegistry


def get_lobby_server(request: Request) -> TcpGameServer | None:
    return getattr(request.app.state, "lobby", None)


LobbyServerDep = Annotated[TcpGameServer | None, Depends(get_lobby_server)]


def get_registry(server: LobbyServerDep) -> SessionRegistry:
    if server is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Lobby server not running")
    return server.dispatcher.registry


RegistryDep = Annotated[SessionRegistry, Depends(get_registry)]
