"""Application settings using pydantic-settings.

Settings are loaded from environment variables with sensible defaults
for development. Production deployments should set all values explicitly.
"""

from functools import lru_cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings.

    Environment variables:
        MERENDA_DB_HOST: Database host (default: localhost)
        MERENDA_DB_PORT: Database port (default: 5432)
        MERENDA_DB_DATABASE: Database name (default: merenda)
        MERENDA_DB_USERNAME: Database user (default: merenda)
        MERENDA_DB_PASSWORD: Database password (required in production)
        MERENDA_DB_POOL_MIN_CONNECTIONS: Minimum connections in pool (default: 2)
        MERENDA_DB_POOL_MAX_CONNECTIONS: Maximum connections in pool (default: 10)
        MERENDA_DB_STATEMENT_TIMEOUT_MS: Per-statement timeout (default: 5000)
    """

    model_config = SettingsConfigDict(
        env_prefix="MERENDA_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="merenda", description="Database name")
    username: str = Field(default="merenda", description="Database username")
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password",
    )
    pool_min_connections: int = Field(
        default=2,
        description="Minimum connections in pool",
        ge=1,
        le=100,
    )
    pool_max_connections: int = Field(
        default=10,
        description="Maximum connections in pool",
        ge=1,
        le=100,
    )
    statement_timeout_ms: int = Field(
        default=5000,
        description="Statement timeout applied to request-path connections",
        ge=100,
    )

    @model_validator(mode="after")
    def validate_pool_settings(self) -> "DatabaseSettings":
        """Validate pool max >= min."""
        if self.pool_max_connections < self.pool_min_connections:
            raise ValueError(
                f"pool_max_connections ({self.pool_max_connections}) must be >= "
                f"pool_min_connections ({self.pool_min_connections})"
            )
        return self

    @property
    def connection_string(self) -> str:
        """Generate a connection string (without password for logging)."""
        return f"postgresql://{self.username}@{self.host}:{self.port}/{self.database}"


class TenancySettings(BaseSettings):
    """Tenant resolution and isolation settings.

    Environment variables:
        MERENDA_TENANCY_HEADER_NAME: Explicit tenant selector header
        MERENDA_TENANCY_BASE_DOMAIN: Domain whose subdomains select a tenant
        MERENDA_TENANCY_DIRECTORY_CACHE_TTL_SECONDS: Directory cache TTL.
            Membership revocation propagates within this window, so keep it
            in seconds.
        MERENDA_TENANCY_ADMIN_ROUTE_PREFIX: System-admin route namespace
        MERENDA_TENANCY_BACKFILL_BATCH_SIZE: Rows updated per backfill batch
    """

    model_config = SettingsConfigDict(
        env_prefix="MERENDA_TENANCY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    header_name: str = Field(
        default="X-Tenant-ID",
        description="Header carrying an explicit tenant selector",
    )
    base_domain: str | None = Field(
        default=None,
        description="Base domain for subdomain tenant selection (e.g. merenda.app)",
    )
    directory_cache_ttl_seconds: float = Field(
        default=5.0,
        description="TTL for cached directory lookups",
        ge=0,
        le=60,
    )
    directory_cache_max_entries: int = Field(
        default=10_000,
        description="Upper bound on cached directory lookups per process",
        ge=1,
    )
    admin_route_prefix: str = Field(
        default="/admin",
        description="Route prefix reserved for system-admin operations",
    )
    backfill_batch_size: int = Field(
        default=1000,
        description="Rows updated per backfill batch",
        ge=1,
        le=100_000,
    )
    current_tenant_setting: str = Field(
        default="app.current_tenant_id",
        description="Database setting consulted by row security policies",
    )
    admin_bypass_setting: str = Field(
        default="app.admin_bypass",
        description="Database setting enabling the audited admin data path",
    )


class AuthSettings(BaseSettings):
    """Identity token verification settings.

    Environment variables:
        MERENDA_AUTH_TOKEN_SECRET: Shared secret for HS256 tokens
        MERENDA_AUTH_ALGORITHM: Signing algorithm (default: HS256)
        MERENDA_AUTH_ISSUER: Expected issuer claim
        MERENDA_AUTH_AUDIENCE: Expected audience claim
    """

    model_config = SettingsConfigDict(
        env_prefix="MERENDA_AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    token_secret: SecretStr = Field(
        default=SecretStr("merenda-dev-secret"),
        description="Secret used to verify identity tokens",
    )
    algorithm: str = Field(default="HS256", description="Token signing algorithm")
    issuer: str = Field(default="merenda", description="Expected token issuer")
    audience: str = Field(default="merenda-api", description="Expected audience")
    default_tenant_claim: str = Field(
        default="tenant_id",
        description="Claim carrying the caller's default tenant",
    )
    tenants_claim: str = Field(
        default="tenants",
        description="Claim carrying the membership hint list",
    )
    kind_claim: str = Field(
        default="kind",
        description="Claim distinguishing user and system-admin credentials",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="Merenda Tenancy API", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    @property
    def database(self) -> DatabaseSettings:
        """Get database settings."""
        return get_database_settings()

    @property
    def tenancy(self) -> TenancySettings:
        """Get tenancy settings."""
        return get_tenancy_settings()

    @property
    def auth(self) -> AuthSettings:
        """Get auth settings."""
        return get_auth_settings()


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Get cached database settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return DatabaseSettings()


@lru_cache
def get_tenancy_settings() -> TenancySettings:
    """Get cached tenancy settings."""
    return TenancySettings()


@lru_cache
def get_auth_settings() -> AuthSettings:
    """Get cached auth settings."""
    return AuthSettings()
