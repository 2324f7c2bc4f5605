from pydantic_settings import BaseSettings, SettingsConfigDict
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional
from jose import jwt

class Settings(BaseSettings):
    app_name: str = "Obligation Scheduler"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db_name: str = "obligation_scheduler"
    # applied as the motor client-side operation timeout
    store_timeout_ms: int = 5000

    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    allowed_origins: str = "*"

    # Automation
    scheduler_enabled: bool = True
    scheduler_tick_seconds: int = 60
    scheduler_retry_seconds: int = 60
    scheduler_timezone: str = "Asia/Kolkata"
    default_auto_run_time: str = "09:00"
    run_lease_seconds: int = 900
    generation_concurrency: int = 8

    # Recurrence
    custom_scan_years: int = 10
    preview_max_count: int = 50
    due_soon_days: int = 7

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def cors_origins(self) -> List[str]:
        if self.allowed_origins.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()

# -----------------------
# JWT configuration
# -----------------------

def _now_utc() -> datetime:
    return datetime.now(timezone.utc)

def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    if not settings.jwt_secret_key:
        raise RuntimeError("JWT_SECRET_KEY must be set in environment")
    to_encode = data.copy()
    now = _now_utc()
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"iat": now, "exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
