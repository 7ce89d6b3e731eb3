from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path.home() / ".keymeter"

DEFAULT_USAGE_ENDPOINT_URL = "https://app.factory.ai/api/organization/members/chat-usage"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KEYMETER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = f"sqlite+aiosqlite:///{BASE_DIR / 'store.db'}"
    encryption_key_file: Path = BASE_DIR / "encryption.key"

    usage_endpoint_url: str = DEFAULT_USAGE_ENDPOINT_URL
    usage_user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36"
    )
    usage_fetch_concurrency: int = Field(default=5, ge=1)
    usage_request_timeout_seconds: float = Field(default=30.0, gt=0)

    auto_refresh_interval_seconds: float = Field(default=0.0, ge=0)
    display_timezone: str = "Asia/Shanghai"

    admin_password: str | None = None
    dashboard_session_ttl_seconds: int = Field(default=7 * 24 * 60 * 60, gt=0)

    host: str = "127.0.0.1"
    port: int = 8100

    @field_validator("database_url")
    @classmethod
    def _expand_sqlite_home(cls, value: str) -> str:
        prefix = "sqlite+aiosqlite:///"
        if value.startswith(prefix) and value[len(prefix) :].startswith("~"):
            return prefix + str(Path(value[len(prefix) :]).expanduser())
        return value

    @field_validator("encryption_key_file")
    @classmethod
    def _expand_key_path(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("admin_password")
    @classmethod
    def _blank_password_is_unset(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
