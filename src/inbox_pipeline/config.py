from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MiB = 1024 * 1024


class Settings(BaseSettings):
    API_BASE_URL: str = "http://localhost:5000/api"
    WS_URL: str = "ws://localhost:5000/ws"
    API_TOKEN: str = ""

    HTTP_TIMEOUT_SECONDS: float = 15.0
    VIDEO_UPLOAD_TIMEOUT_SECONDS: float = Field(default=180.0, ge=180.0)

    WS_HEARTBEAT_SECONDS: int = 30
    WS_RECONNECT_DELAY_SECONDS: float = 3.0

    HISTORY_PAGE_SIZE: int = 15
    CATCH_UP_PAGE_SIZE: int = 50

    TYPING_IDLE_SECONDS: float = Field(default=1.0, ge=1.0, le=3.0)

    RECORDING_MAX_SECONDS: int = 300
    RECORDING_TICK_SECONDS: float = 1.0

    DELETE_WINDOW_SECONDS: int = 7 * 60

    QUICK_REPLY_TRIGGER: str = Field(default="/", min_length=1, max_length=1)

    MAX_IMAGE_BYTES: int = 50 * MiB
    MAX_VIDEO_BYTES: int = 100 * MiB
    MAX_DOCUMENT_BYTES: int = 100 * MiB

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="INBOX_",
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
