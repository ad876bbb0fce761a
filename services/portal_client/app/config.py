from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from services.common.config import LogLevel

ToastPosition = Literal["top-right", "top-left", "bottom-right", "bottom-left"]

DEFAULT_SUPPRESS_SUCCESS_FOR = (
    "grade selection",
    "school selection",
    "form input",
    "data loading",
)
DEFAULT_ALWAYS_SHOW = (
    "error",
    "authentication",
    "data save",
    "profile submit",
)


class ToastSettings(BaseSettings):
    """Tuning for the toast coalescer."""

    enabled: bool = Field(default=True)
    debounce_seconds: float = Field(default=2.0, gt=0.0)
    recent_seconds: float = Field(default=5.0, gt=0.0)
    max_queue_size: int = Field(default=3, ge=1)
    suppress_success_for: list[str] = Field(default_factory=lambda: list(DEFAULT_SUPPRESS_SUCCESS_FOR))
    always_show: list[str] = Field(default_factory=lambda: list(DEFAULT_ALWAYS_SHOW))
    default_position: ToastPosition = Field(default="top-right")
    error_duration_ms: int = Field(default=5000, gt=0)
    default_duration_ms: int = Field(default=3000, gt=0)

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"), env_prefix="TOAST_", extra="ignore"
    )


class ClientSettings(BaseSettings):
    """Connection settings for the portal command line client."""

    base_url: str = Field(default="http://127.0.0.1:8000")
    user_id: str | None = Field(default=None)
    role: Literal["student", "coordinator"] = Field(default="student")
    timeout_seconds: float = Field(default=10.0, gt=0.0)
    log_level: LogLevel = Field(default="WARNING")

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"), env_prefix="PORTAL_", extra="ignore"
    )


@lru_cache
def get_toast_settings() -> ToastSettings:
    return ToastSettings()


@lru_cache
def get_client_settings() -> ClientSettings:
    return ClientSettings()
