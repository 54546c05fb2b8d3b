"""Application configuration using pydantic-settings."""
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DEMO_DATA_PATH = Path(__file__).parent / "demo_mode.json"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Discord - the identity authority for credentials and guild membership
    discord_api_url: str = Field(
        default="https://discord.com/api", validation_alias="DISCORD_API_URL",
    )
    discord_client_id: str = Field(default="", validation_alias="DISCORD_CLIENT_ID")
    discord_client_secret: str = Field(default="", validation_alias="DISCORD_CLIENT_SECRET")
    discord_timeout_seconds: float = Field(
        default=10.0, validation_alias="DISCORD_TIMEOUT_SECONDS",
    )

    # Demo mode - this credential never reaches Discord
    demo_token: str = Field(default="demo", validation_alias="DEMO_TOKEN")
    demo_data_path: Path = Field(
        default=DEFAULT_DEMO_DATA_PATH, validation_alias="DEMO_DATA_PATH",
    )

    # Cache policy
    credential_cache_ttl_seconds: float = Field(
        default=24 * 60 * 60, validation_alias="CREDENTIAL_CACHE_TTL_SECONDS",
    )
    credential_cache_max_entries: int = Field(
        default=10_000, validation_alias="CREDENTIAL_CACHE_MAX_ENTRIES",
    )
    directory_cache_ttl_seconds: float = Field(
        default=24 * 60 * 60, validation_alias="DIRECTORY_CACHE_TTL_SECONDS",
    )

    # Location obfuscation
    jiggle_grid_step_degrees: float = Field(
        default=0.04, validation_alias="JIGGLE_GRID_STEP_DEGREES",
    )
    jiggle_offset_fraction: float = Field(
        default=0.5, validation_alias="JIGGLE_OFFSET_FRACTION",
    )

    # Durable snapshot of the population (disabled when unset or missing)
    data_dir: Path | None = Field(default=None, validation_alias="DATA_DIR")
    persist_interval_seconds: float = Field(
        default=60.0, validation_alias="PERSIST_INTERVAL_SECONDS",
    )

    # Nearby notifications
    nearby_check_enabled: bool = Field(default=False, validation_alias="NEARBY_CHECK_ENABLED")
    nearby_check_interval_seconds: float = Field(
        default=6.0, validation_alias="NEARBY_CHECK_INTERVAL_SECONDS",
    )
    nearby_distance_meters: float = Field(
        default=500.0, validation_alias="NEARBY_DISTANCE_METERS",
    )
    nearby_cooldown_seconds: float = Field(
        default=24 * 60 * 60, validation_alias="NEARBY_COOLDOWN_SECONDS",
    )

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS",
    )

    @model_validator(mode="after")
    def validate_policy_knobs(self) -> "Settings":
        """
        Reject cache and obfuscation settings that would break the pipeline.

        A zero TTL would turn every request into an authority round-trip, and a
        non-positive grid step cannot partition coordinates into cells.
        """
        positive = {
            "CREDENTIAL_CACHE_TTL_SECONDS": self.credential_cache_ttl_seconds,
            "DIRECTORY_CACHE_TTL_SECONDS": self.directory_cache_ttl_seconds,
            "CREDENTIAL_CACHE_MAX_ENTRIES": self.credential_cache_max_entries,
            "JIGGLE_GRID_STEP_DEGREES": self.jiggle_grid_step_degrees,
            "DISCORD_TIMEOUT_SECONDS": self.discord_timeout_seconds,
            "PERSIST_INTERVAL_SECONDS": self.persist_interval_seconds,
            "NEARBY_CHECK_INTERVAL_SECONDS": self.nearby_check_interval_seconds,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

        if not 0 <= self.jiggle_offset_fraction <= 1:
            raise ValueError(
                f"JIGGLE_OFFSET_FRACTION must be between 0 and 1, "
                f"got {self.jiggle_offset_fraction}",
            )
        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def discord_oauth_configured(self) -> bool:
        """Whether client credentials for the OAuth code exchange are present."""
        return bool(self.discord_client_id and self.discord_client_secret)

    @property
    def persistence_enabled(self) -> bool:
        """Persist only into an existing directory, never create one implicitly."""
        return self.data_dir is not None and self.data_dir.is_dir()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
