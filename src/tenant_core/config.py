"""Centralized application configuration via environment variables."""

from enum import StrEnum
from functools import lru_cache

from pydantic import SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class StorageBackendKind(StrEnum):
    """Storage implementation, chosen once at startup."""

    MEMORY = "memory"
    POSTGRES = "postgres"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The credential signing secret uses SecretStr to prevent accidental
    logging. Database URL is assembled from individual components to match
    the official PostgreSQL Docker image environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App ---
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "DEBUG"
    # --- CORS ---
    cors_allowed_origins: list[str] = []
    cors_allow_credentials: bool = False
    cors_allowed_methods: list[str] = ["GET", "POST", "PATCH"]
    cors_allowed_headers: list[str] = ["Content-Type", "Authorization"]

    # --- Storage ---
    storage_backend: StorageBackendKind = StorageBackendKind.POSTGRES

    # --- PostgreSQL ---
    postgres_user: str = "tenant_core"
    postgres_password: SecretStr = SecretStr("secret")
    postgres_db: str = "tenant_core"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    db_pool_size: int = 20
    db_pool_timeout: float = 2.0
    db_pool_recycle: int = 1800

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """Assemble database URL from components.

        Uses psycopg v3 driver which supports both sync (create_engine)
        and async (create_async_engine) modes natively.
        """
        password = self.postgres_password.get_secret_value()
        return (
            f"postgresql+psycopg://{self.postgres_user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # --- Credentials ---
    jwt_secret: SecretStr = SecretStr("dev-secret-change-in-production")
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60
    # Subjects of the form "<tenant>|<user>" carry the tenant when the
    # explicit tenant_id claim is missing.
    jwt_subject_delimiter: str = "|"

    # --- Quota defaults (applied on onboarding and for missing rows) ---
    default_max_users: int = 10
    default_max_orders: int = 1000
    default_max_events: int = 100
    default_storage_quota_mb: int = 1000
    default_api_calls_per_day: int = 10_000
    quota_reset_period_hours: int = 24

    # --- Convenience properties ---
    @property
    def is_dev(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton.

    Usage::

        from tenant_core.config import get_settings
        settings = get_settings()

    Or for dependency injection in FastAPI::

        @app.get("/")
        def root(settings: Settings = Depends(get_settings)):
            ...
    """
    return Settings()


settings = get_settings()
