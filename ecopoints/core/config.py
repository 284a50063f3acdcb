from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    if v is None or v == "":
        return _DEFAULT_CORS.copy()
    if isinstance(v, list):
        return [x for x in v if isinstance(x, str) and x.strip()]
    s = str(v).strip()
    if not s:
        return _DEFAULT_CORS.copy()
    if s.startswith("["):
        import json
        try:
            out = json.loads(s)
        except ValueError:
            return _DEFAULT_CORS.copy()
        return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
    return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")
    timezone: str = Field(default="Asia/Ho_Chi_Minh", alias="TIMEZONE")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="ecopoints", alias="MONGODB_DB_NAME")

    # Redis (admission control)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    rate_limit_enabled: bool = Field(default=False, alias="RATE_LIMIT_ENABLED")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Waste exchange (ledger pathway)
    points_per_kg: int = 10
    bonus_threshold_kg: float = 10

    # Daily check-in
    checkin_base_points: int = 2
    checkin_weekend_points: int = 5
    checkin_streak_days: int = 7
    checkin_streak_bonus: int = 3

    # Waste submissions (workflow pathway)
    submission_price_per_kg: int = 10000  # VND
    point_value: int = 1000  # VND per point

    # Vouchers
    voucher_code_length: int = 12
    voucher_code_max_attempts: int = 10

    # Optimistic locking
    ledger_max_retries: int = 5
    ledger_pending_grace_seconds: int = 30  # age after which an unsettled pending entry is dropped

    # Admission windows: (limit, window seconds)
    exchange_rate_limit: int = 10
    exchange_rate_window: int = 3600
    checkin_rate_limit: int = 3
    checkin_rate_window: int = 24 * 3600
    points_rate_limit: int = 20
    points_rate_window: int = 15 * 60


@lru_cache
def get_settings() -> Settings:
    return Settings()
