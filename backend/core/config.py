import re
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

_DURATION_RE = re.compile(r"^(\d+)([smhd])$", re.IGNORECASE)
_DURATION_MULTIPLIERS = {"s": 1, "m": 60, "h": 60 * 60, "d": 60 * 60 * 24}


def parse_duration(value: str) -> int:
    """Convert a `<integer><unit>` duration (unit in s/m/h/d) to seconds."""
    match = _DURATION_RE.match((value or "").strip())
    if not match:
        raise ValueError(f"Invalid duration format: {value}")
    amount, unit = match.groups()
    return int(amount) * _DURATION_MULTIPLIERS[unit.lower()]


class Settings(BaseSettings):
    # App settings
    APP_NAME: str = "Roadmap Tracker API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Database settings
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300
    DB_POOL_TIMEOUT: int = 10
    DB_PRE_PING: bool = True

    # Token settings
    JWT_ACCESS_SECRET: str
    JWT_REFRESH_SECRET: str
    JWT_ACCESS_TTL: str
    JWT_REFRESH_TTL: str
    JWT_ALGORITHM: str = "HS256"

    # Refresh cookie / CORS
    FRONTEND_ORIGIN: str
    REFRESH_COOKIE_NAME: str = "refreshToken"

    # Login throttling
    LOGIN_RATE_LIMIT: int = 5
    LOGIN_RATE_WINDOW_SECONDS: int = 60

    # Optional admin bootstrap
    ADMIN_USERNAME: Optional[str] = None
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TTL_DAYS: int = 7

    @field_validator("JWT_ACCESS_TTL", "JWT_REFRESH_TTL")
    @classmethod
    def _check_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @property
    def access_token_ttl_seconds(self) -> int:
        return parse_duration(self.JWT_ACCESS_TTL)

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return parse_duration(self.JWT_REFRESH_TTL)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create settings instance
settings = Settings()

# Validate required settings
if not settings.DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is required")

if not settings.JWT_ACCESS_SECRET or not settings.JWT_REFRESH_SECRET:
    raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET environment variables are required")

if settings.JWT_ACCESS_SECRET == settings.JWT_REFRESH_SECRET:
    raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be different")

if not settings.FRONTEND_ORIGIN:
    raise ValueError("FRONTEND_ORIGIN environment variable is required")
