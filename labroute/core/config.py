"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables and .env file.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Application
    # =========================================================================
    app_name: str = "LabRoute"
    app_version: str = "1.0.0"
    debug: bool = False
    api_v1_prefix: str = "/api/v1"

    # Tenant loaded on startup (empty = lazy load on first request)
    default_lab_id: Optional[str] = None

    # =========================================================================
    # Persistence API
    # =========================================================================
    logistics_api_url: Optional[str] = Field(
        default=None,
        description="Base URL of the logistics REST API (unset = in-memory backend)",
    )

    api_timeout_seconds: float = Field(
        default=30.0,
        description="Request timeout for the logistics REST API",
    )

    api_token: Optional[str] = Field(
        default=None,
        description="Bearer token for the logistics REST API",
    )

    # =========================================================================
    # Cache & Deduplication
    # =========================================================================
    cache_default_ttl_ms: int = Field(
        default=300_000,
        description="Default cache entry TTL in milliseconds",
    )

    cache_max_size: int = Field(
        default=1000,
        description="Maximum number of cache entries before LRU eviction",
    )

    bootstrap_cache_ttl_ms: int = Field(
        default=60_000,
        description="TTL of the per-tenant bulk load snapshot",
    )

    # =========================================================================
    # Real-time Transport
    # =========================================================================
    ws_url: str = Field(
        default="wss://api.lab-portal.com/ws",
        description="WebSocket endpoint for real-time logistics updates",
    )

    ws_reconnect_delay_ms: int = 3000
    ws_max_reconnect_attempts: int = 5
    ws_heartbeat_interval_ms: int = 30_000
    location_tracking_interval_ms: int = 30_000

    # =========================================================================
    # Route Optimizer
    # =========================================================================
    average_speed_kmh: float = Field(
        default=40.0,
        description="Average urban driving speed used for duration estimates",
    )

    stop_service_minutes: int = Field(
        default=10,
        description="Fixed service time spent at each stop",
    )

    default_depot_latitude: float = Field(
        default=40.7128,
        description="Fallback start latitude when no stop has coordinates",
    )

    default_depot_longitude: float = Field(
        default=-74.0060,
        description="Fallback start longitude when no stop has coordinates",
    )

    # =========================================================================
    # Cascade Reconciliation
    # =========================================================================
    cascade_max_retries: int = Field(
        default=3,
        description="Attempts before a failed cascade update is abandoned",
    )
    cascade_abandoned_history: int = Field(
        default=100,
        description="Abandoned cascade updates kept for inspection (oldest dropped first)",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience alias
settings = get_settings()
