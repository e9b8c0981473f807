"""Settings for the Rallypoint backend."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    service_name: str = _env_field("rallypoint-api", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_metrics_public: bool = _env_field(False, "METRICS_PUBLIC", "OBS_METRICS_PUBLIC")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")

    # Shared operator token for /api/admin and /metrics. Unset means no admin access.
    admin_token: Optional[str] = _env_field(None, "ADMIN_TOKEN")
    cors_allow_origins: Any = _env_field((), "CORS_ALLOW_ORIGINS")

    room_code_length: int = _env_field(6, "ROOM_CODE_LENGTH")
    room_code_attempts: int = _env_field(10, "ROOM_CODE_ATTEMPTS")
    location_history_limit: int = _env_field(50, "LOCATION_HISTORY_LIMIT")
    location_history_window_seconds: float = _env_field(3600.0, "LOCATION_HISTORY_WINDOW_SECONDS")

    reaper_enabled: bool = _env_field(True, "REAPER_ENABLED")
    reaper_interval_seconds: int = _env_field(3600, "REAPER_INTERVAL_SECONDS")
    room_retention_seconds: float = _env_field(86400.0, "ROOM_RETENTION_SECONDS")

    gpx_max_bytes: int = _env_field(5 * 1024 * 1024, "GPX_MAX_BYTES")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development")

    @field_validator("cors_allow_origins", mode="before")
    def _split_cors(cls, value):  # type: ignore[override]
        if value in (None, ""):
            return ()
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        if isinstance(value, (list, tuple, set)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        return ()

    @field_validator("obs_log_level", mode="after")
    def _normalise_level(cls, value: str) -> str:  # type: ignore[override]
        return value.upper()


settings = Settings()
