import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_RATE_LIMIT_PER_DAY = 10
DEFAULT_STATIC_DIR = Path(__file__).resolve().parent.parent / "api" / "static"

_LEADING_INT_PATTERN = re.compile(r"^\s*([+-]?\d+)")


def parse_positive_int(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value if value >= 1 else fallback
    if not isinstance(value, str):
        return fallback

    match = _LEADING_INT_PATTERN.match(value)
    if not match:
        return fallback
    parsed = int(match.group(1))
    return parsed if parsed >= 1 else fallback


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"

    supabase_url: str = Field(default="")
    supabase_service_role_key: str = Field(default="")
    waitlist_table: str = "waitlist_entries"

    waitlist_rate_limit_per_day: int = DEFAULT_RATE_LIMIT_PER_DAY
    ip_hash_mode: Literal["auto", "always", "never"] = "auto"

    sentry_dsn: str = Field(default="")
    cors_allowed_origins: str = Field(default="")
    static_dir: str = Field(default=str(DEFAULT_STATIC_DIR))

    @field_validator("waitlist_rate_limit_per_day", mode="before")
    @classmethod
    def _lenient_rate_limit(cls, value: Any) -> int:
        return parse_positive_int(value, DEFAULT_RATE_LIMIT_PER_DAY)

    def _is_missing(self, value: str) -> bool:
        return not value or not value.strip()

    def get_cors_allowed_origins(self) -> list[str]:
        raw = self.cors_allowed_origins.strip()
        if not raw:
            return []
        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    def required_env_for_api(self) -> dict[str, str]:
        return {
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_SERVICE_ROLE_KEY": self.supabase_service_role_key,
            "WAITLIST_TABLE": self.waitlist_table,
        }

    def missing_required_env_for_api(self) -> list[str]:
        return [name for name, value in self.required_env_for_api().items() if self._is_missing(value)]

    def validate_runtime(self) -> None:
        if self.app_env not in {"staging", "prod"}:
            return

        missing = self.missing_required_env_for_api()
        if missing:
            missing_names = ", ".join(missing)
            raise ValueError(f"Missing required environment variables for the API: {missing_names}")

        if self._is_missing(self.sentry_dsn):
            raise ValueError("SENTRY_DSN must be set for the API service in staging/prod.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
