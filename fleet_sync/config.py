from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./fleet_sync.db",
        alias="DATABASE_URL"
    )

    # Security - tokens are issued by the auth service, we only verify them
    secret_key: str = Field(default="dev-secret-key-at-least-32-characters-long-for-development", alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")

    # Roles allowed to trigger syncs and resolve conflicts (comma-separated)
    fleet_manager_roles: str = Field(default="admin,fleet_manager", alias="FLEET_MANAGER_ROLES")

    # CORS - Frontend URLs from environment (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        alias="ALLOWED_ORIGINS"
    )

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # Rate limiting (Redis is used when REDIS_URL is set)
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    redis_url: str = Field(default="", alias="REDIS_URL")

    # ==============================================
    # Availability Sync Settings
    # ==============================================
    # Default horizon when no dateRange is given
    sync_default_horizon_days: int = Field(default=90, alias="SYNC_DEFAULT_HORIZON_DAYS")

    # Upper bound on the synchronous endpoint; bigger batches go through sync jobs
    sync_max_vehicles_per_request: int = Field(default=50, alias="SYNC_MAX_VEHICLES_PER_REQUEST")

    # Longest dateRange accepted
    sync_max_range_days: int = Field(default=366, alias="SYNC_MAX_RANGE_DAYS")

    # Relative change that triggers a price update notification (0.10 = 10%)
    price_change_notify_threshold: float = Field(default=0.10, alias="PRICE_CHANGE_NOTIFY_THRESHOLD")

    # Worker settings (runs inside FastAPI process when enabled)
    sync_worker_enabled: bool = Field(default=True, alias="SYNC_WORKER_ENABLED")
    worker_poll_interval: int = Field(default=10, alias="WORKER_POLL_INTERVAL")  # seconds
    worker_batch_size: int = Field(default=5, alias="WORKER_BATCH_SIZE")
    sync_job_max_attempts: int = Field(default=3, alias="SYNC_JOB_MAX_ATTEMPTS")
    # A running job with no progress for this long is treated as abandoned
    sync_job_stale_after_seconds: int = Field(default=900, alias="SYNC_JOB_STALE_AFTER_SECONDS")

    # ==============================================
    # Remote availability feed (optional)
    # ==============================================
    remote_availability_url: str = Field(default="", alias="REMOTE_AVAILABILITY_URL")
    remote_availability_api_key: str = Field(default="", alias="REMOTE_AVAILABILITY_API_KEY")
    remote_availability_timeout_seconds: int = Field(default=20, alias="REMOTE_AVAILABILITY_TIMEOUT_SECONDS")

    @field_validator('secret_key')
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate SECRET_KEY is strong enough"""
        if not v:
            raise ValueError("SECRET_KEY is required and cannot be empty")
        if len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator('database_url')
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        # Hosted Postgres often hands out postgres://, SQLAlchemy needs postgresql://
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def has_remote_availability_feed(self) -> bool:
        return bool(self.remote_availability_url)

    @property
    def fleet_manager_role_list(self) -> List[str]:
        return [r.strip() for r in self.fleet_manager_roles.split(",") if r.strip()]

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
