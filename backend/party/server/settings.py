"""Party server configuration via environment variables."""

from typing import Annotated

from pydantic import Field, TypeAdapter, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_ORIGIN_LIST = TypeAdapter(list[str])


class PartyServerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PARTY_")

    grace_period_seconds: float = Field(default=30.0, gt=0)
    room_ttl_seconds: float = Field(default=2 * 60 * 60, ge=60)
    reaper_interval_seconds: float = Field(default=60.0, gt=0)
    max_players: int = Field(default=20, ge=2)
    min_players: int = Field(default=2, ge=1)
    max_name_length: int = Field(default=20, ge=1, le=200)
    start_delay_seconds: float = Field(default=0.5, ge=0)
    # Multiplies every game and bot delay; tests shrink it.
    game_time_scale: float = Field(default=1.0, gt=0)
    log_dir: str | None = None
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:5173"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Accept a list, a JSON array string, or a comma-separated string."""
        if isinstance(v, list):
            return v
        stripped = v.strip()
        if stripped.startswith("["):
            return _ORIGIN_LIST.validate_json(stripped)
        origins = [origin.strip() for origin in stripped.split(",") if origin.strip()]
        if not origins:
            raise ValueError("cors_origins must not be empty")
        return origins
