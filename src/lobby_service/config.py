from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    TCP_HOST: str = "0.0.0.0"
    TCP_PORT: int = 5204

    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 8000

    TICK_INTERVAL: float = 0.01
    READ_CHUNK_SIZE: int = 4096
    MAX_RECORD_BYTES: int = 1024 * 1024

    CLIENT_REQUEST_TIMEOUT: float = 1.0
    CLIENT_POLL_INTERVAL: float = 0.01
    CLIENT_CONNECT_TIMEOUT: float = 5.0

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
