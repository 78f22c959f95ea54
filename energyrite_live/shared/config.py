"""
MODULE OVERVIEW:
Application-wide configuration using Pydantic Settings.

WHAT IS HAPPENING HERE:
Every timing, limit and connection parameter of the live vehicle feed is declared
here once. The database connection string is resolved through a fallback chain:
an explicit DATABASE_URL wins, otherwise it is assembled from discrete host/port/
name/user/password variables (DB_*, then the libpq-style PG* names, then PG_*).
"""
from urllib.parse import quote

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str | None = None
    DB_HOST: str | None = Field(None, validation_alias=AliasChoices("DB_HOST", "PGHOST", "PG_HOST"))
    DB_PORT: str = Field("5432", validation_alias=AliasChoices("DB_PORT", "PGPORT", "PG_PORT"))
    DB_NAME: str | None = Field(None, validation_alias=AliasChoices("DB_NAME", "PGDATABASE", "PG_DATABASE"))
    DB_USER: str | None = Field(None, validation_alias=AliasChoices("DB_USER", "PGUSER", "PG_USER"))
    DB_PASSWORD: str | None = Field(None, validation_alias=AliasChoices("DB_PASSWORD", "PGPASSWORD", "PG_PASSWORD"))
    DB_SSL: bool = False

    # Each open stream holds one pooled connection, so the max size is also
    # the ceiling on concurrent streaming clients.
    DB_POOL_MIN_SIZE: int = 0
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_ACQUIRE_TIMEOUT_S: float = 5.0

    # Live feed
    NOTIFY_CHANNEL: str = "energyrite_vehicles_updated"
    SSE_HEARTBEAT_INTERVAL_S: float = 15.0
    SSE_DISCONNECT_POLL_S: float = 1.0
    SSE_MAX_PENDING: int = 1000

    # Snapshot
    SNAPSHOT_DEFAULT_LIMIT: int = 50
    SNAPSHOT_MAX_LIMIT: int = 500

    # Upstream vehicle/sites API
    SITES_API_URL: str = "http://209.38.217.58:8000/api/energyrite-sites"
    SITES_API_TIMEOUT_S: float = 10.0

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'ignore'
        populate_by_name = True

    def resolve_dsn(self) -> str | None:
        """Return the connection string, or None when the database is not configured."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.DB_HOST and self.DB_NAME and self.DB_USER and self.DB_PASSWORD is not None:
            user = quote(self.DB_USER, safe="")
            password = quote(self.DB_PASSWORD, safe="")
            return f"postgresql://{user}:{password}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        return None


settings = Settings()
