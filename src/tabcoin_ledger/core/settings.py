"""Application settings and configuration.

This module defines all configuration options for the TabCoin ledger engine.
Settings are loaded from environment variables with sensible defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, urlsplit, urlunsplit

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def to_libpq_uri(uri: str) -> str:
    """Turn a configured database URL into a plain libpq URI.

    Direct connections go through psycopg, which rejects the driver suffix the
    pooled engine needs (``postgresql+psycopg``). Surrounding quotes left by
    .env files are dropped.

    Raises:
        ValueError: If the URL is empty or is not a Postgres URL.
    """
    cleaned = (uri or "").strip()
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in "'\"":
        cleaned = cleaned[1:-1].strip()
    if not cleaned:
        raise ValueError("DATABASE_URL is empty")

    parts = urlsplit(cleaned)
    scheme = parts.scheme.partition("+")[0]
    if scheme not in ("postgres", "postgresql"):
        raise ValueError(f"DATABASE_URL is not a Postgres URL: {cleaned!r}")
    return urlunsplit(parts._replace(scheme=scheme))


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Database credentials follow the usual ``POSTGRES_*`` names; a full
    ``DATABASE_URL`` takes precedence when it is set.
    """

    # Database configuration
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_user: str = Field(default="postgres", alias="POSTGRES_USER")
    postgres_password: str = Field(default="", alias="POSTGRES_PASSWORD")
    postgres_db: str = Field(default="tabcoins", alias="POSTGRES_DB")
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Deployment capability flags
    serverless_runtime: bool = Field(default=False, alias="SERVERLESS_RUNTIME")
    build_time: bool = Field(default=False, alias="BUILD_TIME")

    # Connection pool sizing and timeouts
    pool_max_serverless: int = Field(default=3, alias="DB_POOL_MAX_SERVERLESS")
    pool_max_long_lived: int = Field(default=30, alias="DB_POOL_MAX_LONG_LIVED")
    connect_timeout_seconds: float = Field(default=10.0, alias="DB_CONNECT_TIMEOUT_SECONDS")
    idle_timeout_seconds: float = Field(default=30.0, alias="DB_IDLE_TIMEOUT_SECONDS")

    # Retry with exponential backoff
    pool_retries: int = Field(default=1, alias="DB_POOL_RETRIES")
    pool_retries_build_time: int = Field(default=12, alias="DB_POOL_RETRIES_BUILD_TIME")
    retry_min_seconds: float = Field(default=0.15, alias="DB_RETRY_MIN_SECONDS")
    retry_max_seconds: float = Field(default=5.0, alias="DB_RETRY_MAX_SECONDS")
    retry_factor: float = Field(default=2.0, alias="DB_RETRY_FACTOR")
    direct_retries: int = Field(default=50, alias="DB_DIRECT_RETRIES")

    # Capacity pressure heuristics
    opened_connections_max_age_seconds: float = Field(
        default=5.0,
        alias="DB_OPENED_CONNECTIONS_MAX_AGE_SECONDS",
    )
    max_connections_tolerance: float = Field(default=0.8, alias="DB_MAX_CONNECTIONS_TOLERANCE")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def effective_database_url(self) -> str:
        """Return the SQLAlchemy URL for the async psycopg driver.

        Returns:
            ``DATABASE_URL`` rewritten to the ``postgresql+psycopg`` scheme, or
            a URL assembled from the ``POSTGRES_*`` values.
        """
        if self.database_url:
            plain = to_libpq_uri(self.database_url)
            return plain.replace("postgresql://", "postgresql+psycopg://", 1).replace(
                "postgres://", "postgresql+psycopg://", 1
            )
        credentials = quote(self.postgres_user, safe="")
        if self.postgres_password:
            credentials += ":" + quote(self.postgres_password, safe="")
        return (
            f"postgresql+psycopg://{credentials}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def direct_conninfo(self) -> str:
        """Return a plain libpq URI for connections opened outside the pool."""
        return to_libpq_uri(self.effective_database_url)

    @property
    def database_name(self) -> str:
        """Return the name of the target database."""
        path = urlsplit(self.direct_conninfo).path.lstrip("/")
        return path or self.postgres_db

    @property
    def deployment_mode(self) -> DeploymentMode:
        """Return the deployment capability flags as an immutable value."""
        return DeploymentMode(
            is_serverless_runtime=self.serverless_runtime,
            is_build_time=self.build_time,
        )


@dataclass(frozen=True)
class DeploymentMode:
    """How the process is deployed.

    Serverless runtimes share a small server-side connection ceiling, so they
    get a tiny pool and shed connections under pressure. Build time means the
    database may not be reachable yet, so acquisition retries longer.
    """

    is_serverless_runtime: bool = False
    is_build_time: bool = False

