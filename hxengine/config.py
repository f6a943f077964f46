"""
hxengine Configuration
"""
from __future__ import annotations
from typing import List, Literal
from pydantic_settings import BaseSettings
from functools import lru_cache


class EngineSettings(BaseSettings):
    """Per-engine settings.

    Each HypermediaEngine owns one instance, so several engines (for example
    in tests) never share cache sizes or delays.
    """

    # History & cache
    history_enabled: bool = True
    history_cache_size: int = 10  # 0 disables snapshot caching
    # "pre-swap": save the page being left under its own URL
    # "post-swap": save the freshly swapped page under the pushed URL
    history_snapshot: Literal["pre-swap", "post-swap"] = "pre-swap"

    # Swap defaults (seconds)
    default_swap_style: str = "innerHTML"
    default_swap_delay: float = 0.0
    default_settle_delay: float = 0.02

    # Synchronization
    default_sync_strategy: str = "abort"

    # Transport
    timeout: float = 0.0  # seconds, 0 = no timeout
    swap_only_on_success: bool = False

    # Request building
    later_params_override: bool = True

    # Marker classes
    request_class: str = "htmx-request"
    settling_class: str = "htmx-settling"
    added_class: str = "htmx-added"

    class Config:
        env_prefix = "HX_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


class Settings(BaseSettings):
    """Demo server settings loaded from environment variables."""

    # Application Configuration
    app_name: str = "hxengine demo"
    debug: bool = True

    # Demo data (catalog.yaml and pages/)
    demo_path: str = ""

    # Spinner demo: artificial latency for the slow search endpoint
    spinner_delay_seconds: float = 2.0

    # Search demo page size
    page_size: int = 6

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS Configuration
    cors_origins: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
