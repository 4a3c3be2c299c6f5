"""Application settings using pydantic-settings.

Settings are loaded from environment variables with sensible defaults
for development. Production deployments should set all values explicitly.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ResolverSettings(BaseSettings):
    """Per-request resolution limits.

    Environment variables:
        TESSERA_RESOLVER_MAX_DEPTH: Maximum relation hops on one path (default: 50)
        TESSERA_RESOLVER_MAX_TUPLES_EXPANDED: Maximum tuples read per request (default: 10000)
        TESSERA_RESOLVER_MAX_CONCURRENCY: Maximum concurrent sub-resolutions (default: 8)
    """

    model_config = SettingsConfigDict(
        env_prefix="TESSERA_RESOLVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    max_depth: int = Field(
        default=50,
        description="Maximum number of relation hops on one resolution path",
        ge=1,
    )
    max_tuples_expanded: int = Field(
        default=10_000,
        description="Maximum number of tuples read while answering one request",
        ge=1,
    )
    max_concurrency: int = Field(
        default=8,
        description="Maximum concurrent sub-resolution tasks per request",
        ge=1,
        le=1024,
    )


class CheckCacheSettings(BaseSettings):
    """Check cache settings.

    Environment variables:
        TESSERA_CACHE_ENABLED: Enable the check cache (default: true)
        TESSERA_CACHE_MAX_ENTRIES: Maximum cached answers (default: 100000)
        TESSERA_CACHE_TTL_SECONDS: Lifetime of a cached answer (default: 60)
    """

    model_config = SettingsConfigDict(
        env_prefix="TESSERA_CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enabled: bool = Field(default=True, description="Enable the check cache")
    max_entries: int = Field(
        default=100_000,
        description="Maximum number of cached check answers",
        ge=1,
    )
    ttl_seconds: float = Field(
        default=60.0,
        description="Seconds a cached answer stays valid",
        gt=0,
    )


class ConsistencySettings(BaseSettings):
    """Snapshot selection settings.

    Environment variables:
        TESSERA_CONSISTENCY_WAIT_TIMEOUT_SECONDS: Maximum wait for a requested revision (default: 5)
        TESSERA_CONSISTENCY_QUANTIZATION_SECONDS: Head reuse window for minimize_latency (default: 1)
    """

    model_config = SettingsConfigDict(
        env_prefix="TESSERA_CONSISTENCY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    wait_timeout_seconds: float = Field(
        default=5.0,
        description="Maximum seconds to wait for a requested revision",
        gt=0,
    )
    quantization_seconds: float = Field(
        default=1.0,
        description="Seconds a head revision is reused for minimize_latency reads",
        ge=0,
    )


class Settings(BaseSettings):
    """Main application settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_prefix="TESSERA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(
        default="Tessera Authorization API", description="Application name"
    )
    debug: bool = Field(default=False, description="Debug mode")
    schema_path: str | None = Field(
        default=None,
        description="Schema document loaded at startup",
    )

    @property
    def resolver(self) -> ResolverSettings:
        """Get resolver settings."""
        return get_resolver_settings()

    @property
    def cache(self) -> CheckCacheSettings:
        """Get check cache settings."""
        return get_cache_settings()

    @property
    def consistency(self) -> ConsistencySettings:
        """Get consistency settings."""
        return get_consistency_settings()


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


@lru_cache
def get_resolver_settings() -> ResolverSettings:
    """Get cached resolver settings."""
    return ResolverSettings()


@lru_cache
def get_cache_settings() -> CheckCacheSettings:
    """Get cached check cache settings."""
    return CheckCacheSettings()


@lru_cache
def get_consistency_settings() -> ConsistencySettings:
    """Get cached consistency settings."""
    return ConsistencySettings()
