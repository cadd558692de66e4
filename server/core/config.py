"""Environment-driven configuration with Pydantic v2."""

from typing import List, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=3000, env="PORT", ge=1024, le=65535)
    debug: bool = Field(default=False, env="DEBUG")
    workers: int = Field(default=1, env="WORKERS", ge=1, le=8)

    # Authentication
    jwt_secret_key: str = Field(env="JWT_SECRET_KEY", min_length=32)
    jwt_expire_minutes: int = Field(default=60, env="JWT_EXPIRE_MINUTES", ge=1)

    # Security
    cors_origins: List[str] = Field(default=["*"], env="CORS_ORIGINS")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/taskboard.db", env="DATABASE_URL")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")

    # SQLite concurrency (WAL, single writer)
    sqlite_busy_timeout_ms: int = Field(default=5000, env="SQLITE_BUSY_TIMEOUT_MS", ge=0)
    sqlite_busy_retries: int = Field(default=5, env="SQLITE_BUSY_RETRIES", ge=1, le=20)
    sqlite_retry_delay: float = Field(default=0.05, env="SQLITE_RETRY_DELAY", ge=0.0, le=5.0)
    sqlite_cache_size_kb: int = Field(default=2000, env="SQLITE_CACHE_SIZE_KB", ge=100)

    # Cache Configuration
    redis_url: Optional[str] = Field(default=None, env="REDIS_URL")
    redis_enabled: bool = Field(default=True, env="REDIS_ENABLED")
    cache_connect_timeout: float = Field(default=5.0, env="CACHE_CONNECT_TIMEOUT", gt=0, le=60)
    tasks_cache_ttl: int = Field(default=60, env="TASKS_CACHE_TTL", ge=1)

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    # Rate Limiting
    rate_limit_enabled: bool = Field(default=True, env="RATE_LIMIT_ENABLED")
    rate_limit_requests: int = Field(default=100, env="RATE_LIMIT_REQUESTS", ge=1)
    rate_limit_window: int = Field(default=60, env="RATE_LIMIT_WINDOW", ge=1)

    # Response compression
    gzip_minimum_size: int = Field(default=1000, env="GZIP_MINIMUM_SIZE", ge=0)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def cache_configured(self) -> bool:
        """Check if a cache endpoint is configured and enabled."""
        return self.redis_enabled and bool(self.redis_url)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
