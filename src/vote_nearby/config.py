"""Configuration management for Vote Nearby using pydantic-settings."""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceConfig(BaseModel):
    """Base configuration for a geocoding service."""

    timeout: float = 60.0
    rate_limit_delay: float = 0.0  # Seconds between requests


class CensusConfig(ServiceConfig):
    """Configuration for the US Census Geocoder."""

    base_url: str = "https://geocoding.geo.census.gov/geocoder"
    benchmark: str = "Public_AR_Current"
    timeout: float = 90.0
    lookup_timeout: float = 10.0  # Single-address lookups at query time


class NominatimConfig(ServiceConfig):
    """Configuration for Nominatim (OpenStreetMap) Geocoder."""

    base_url: str = "https://nominatim.openstreetmap.org"
    email: Optional[str] = None  # Required by usage policy
    rate_limit_delay: float = 1.0  # OSM requires 1 req/sec max
    timeout: float = 10.0
    country: str = "us"


class GeocodeServicesConfig(BaseModel):
    """Container for all geocoding service configurations."""

    census: CensusConfig = Field(default_factory=CensusConfig)
    nominatim: NominatimConfig = Field(default_factory=NominatimConfig)


class PipelineConfig(BaseModel):
    """Tuning knobs for the batch geocoding pipeline."""

    batch_size: int = Field(default=1000, ge=1, le=10000)
    concurrency: int = Field(default=5, ge=1)
    max_retries: int = Field(default=3, ge=0)
    retry_delay_base: float = Field(default=3.0, ge=0.0)  # Seconds, multiplied by attempt
    checkpoint_interval: float = Field(default=5.0, ge=0.0)  # Seconds between cache flushes


class SearchConfig(BaseModel):
    """Tuning knobs for proximity search."""

    default_limit: int = 50
    max_limit: int = 200
    max_address_length: int = 200
    tie_epsilon_meters: float = 5.0
    missing_distance: float = 999_999_999.0  # Sentinel for voters without coordinates
    active_status: str = "Active"
    resolver_cache_size: int = 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_prefix="VOTE_NEARBY_",
        env_file=".env",
        env_nested_delimiter="__",  # VOTE_NEARBY_PIPELINE__CONCURRENCY
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_file: str = Field(
        default="logs/vote-nearby.log",
        description="Path to log file",
    )
    cache_file: str = Field(
        default="data/geocode-cache.json",
        description="Path to the persisted address -> coordinate cache",
    )

    # Geocoding service configurations
    geocode_services: GeocodeServicesConfig = Field(default_factory=GeocodeServicesConfig)
    batch_geocode_service: str = Field(
        default="census", description="Geocoding service used by the batch pipeline"
    )
    lookup_geocode_service: str = Field(
        default="nominatim", description="Geocoding service used for query-time lookups"
    )

    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)


def get_settings() -> Settings:
    """Get application settings instance."""
    return Settings()
