from functools import lru_cache
from typing import Annotated

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    debug: bool = Field(default=False)
    api_prefix: str = Field(default="/api")
    project_name: str = Field(default="Live Stream Room Service")
    database_url: str = Field(
        default="postgresql+asyncpg://postgres:postgres@db:5432/live_streams",
        validation_alias="DATABASE_URL",
    )
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_headers: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = Field(default=True)
    websocket_ping_interval: int = Field(default=20)
    socketio_path: str = Field(default="/ws/socket.io")

    twilio_account_sid: str = Field(default="", validation_alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str = Field(default="", validation_alias="TWILIO_AUTH_TOKEN")
    twilio_video_base_url: str = Field(default="https://video.twilio.com")
    video_room_type: str = Field(default="group")
    video_room_max_participants: int = Field(default=50, ge=1)
    video_room_status_callback: str | None = Field(default=None)
    video_request_timeout_seconds: float = Field(default=30.0, gt=0)
    video_provision_attempts: int = Field(default=3, ge=1)

    chat_max_message_length: int = Field(default=500, ge=1)
    stream_id_pattern: str = Field(default=r"^[A-Za-z0-9_-]{1,64}$")
    require_stream_record: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings: Annotated[Settings, "Application settings"] = get_settings()
