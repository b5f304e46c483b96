"""
MangroveWatch - Configuration Management
Centralized configuration using pydantic-settings.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Database (unset = in-memory repositories)
    database_url: Optional[str] = None
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Media storage
    media_root: str = "."
    public_base_url: str = "http://localhost:5000"
    max_upload_files: int = 5
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_mime_types: List[str] = [
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/heic",
    ]
    min_image_dimension: int = 200

    # Derivatives
    display_max_width: int = 1920
    display_max_height: int = 1080
    display_quality: int = 85
    thumbnail_width: int = 300
    thumbnail_height: int = 200
    thumbnail_quality: int = 80

    # Geo
    on_site_threshold_km: float = 30.0
    nearby_default_radius_km: float = 10.0
    nearby_max_results: int = 50
    geo_grid_cell_degrees: float = 0.1

    # Roles
    reviewer_roles: List[str] = ["government", "ngo"]
    admin_roles: List[str] = ["admin"]

    # Notifications
    notification_retention_days: int = 30

    # Rate limiting
    rate_limit_window_seconds: int = 900
    rate_limit_max_requests: int = 100

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def validator_roles(self) -> List[str]:
        """Roles allowed to move a report through review."""
        return list(dict.fromkeys(self.reviewer_roles + self.admin_roles))


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
