import json
import re
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    # Prefer JSON, but tolerate comma or whitespace separated values.
    if raw.startswith(("[", '"')):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()

    origins: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part:
            continue
        if part == "*":
            return ["*"]
        if part not in origins:
            origins.append(part)
    return origins


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Database settings
    database_url: str = "sqlite+aiosqlite:///./tally.db"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 300
    db_pool_pre_ping: bool = True

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Rate limiting settings
    disable_rate_limit: bool = False
    rate_limit_ip_capacity: float = 10
    rate_limit_ip_refill_per_second: float = 2
    rate_limit_user_capacity: float = 30
    rate_limit_user_refill_per_second: float = 1
    rate_limit_max_entries: int = 10000
    # Only honour X-Forwarded-For when running behind a trusted proxy
    trust_forwarded_for: bool = False

    # Orders: an overridden unit price may not exceed base price * factor
    max_unit_price_factor: int = 100

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator(
        "rate_limit_ip_capacity",
        "rate_limit_ip_refill_per_second",
        "rate_limit_user_capacity",
        "rate_limit_user_refill_per_second",
    )
    @classmethod
    def validate_rate_limit_positive(cls, v: float) -> float:
        """Validate rate limit values are positive."""
        if v <= 0:
            raise ValueError("Rate limit values must be positive")
        return v

    @field_validator("rate_limit_max_entries", "db_pool_size", "max_unit_price_factor")
    @classmethod
    def validate_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.database_url.lower()

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
