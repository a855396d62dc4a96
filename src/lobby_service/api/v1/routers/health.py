from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from lobby_service.api.deps import LobbyServerDep

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(server: LobbyServerDep) -> JSONResponse:
    if server is None or not server.serving:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "errors": ["tcp: listener not serving"]},
        )
    return JSONResponse(content={"status": "ready", "port": server.port})
