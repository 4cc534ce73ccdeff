"""Environment-driven settings.

Every field can be set through a ``BACKPLANE_``-prefixed environment
variable (or a ``.env`` file), e.g. ``BACKPLANE_OPERATION_TIMEOUT=10``.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Schemas left out of introspection after applying a schema change
DEFAULT_IGNORED_SCHEMAS = frozenset(
    {"information_schema", "pg_catalog", "pg_toast", "cron", "auth"}
)


class Settings(BaseSettings):
    """Application settings.

    Connection selection: ``database_url`` is used directly; otherwise
    ``db_profile`` names a profile in ``config_file``.
    """

    model_config = SettingsConfigDict(
        env_prefix="BACKPLANE_",
        env_file=".env",
        extra="ignore",
    )

    database_url: str | None = None
    db_profile: str | None = None
    config_file: str = "db.toml"

    # Seconds
    connect_timeout: int = Field(default=5, gt=0)
    operation_timeout: float = Field(default=30.0, gt=0)

    pool_size: int = Field(default=5, gt=0)

    # Turn off in production to keep driver messages out of responses
    include_error_details: bool = True

    default_schema: str = "public"
    ignored_schemas: set[str] = Field(default_factory=lambda: set(DEFAULT_IGNORED_SCHEMAS))
    strict_update_columns: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
