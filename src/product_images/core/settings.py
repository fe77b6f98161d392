"""Runtime settings, read from ``PRODUCT_IMAGES_*`` environment variables."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import StoreCredentials, TargetFormat


class ServiceSettings(BaseSettings):
    """Configuration for the remote API client and batch runner."""

    model_config = SettingsConfigDict(
        env_prefix="PRODUCT_IMAGES_", env_file=".env", extra="ignore"
    )

    api_version: str = "2024-01"
    http_timeout_seconds: float = 30.0
    max_archive_bytes: int = 50 * 1024 * 1024
    poll_interval_seconds: float = Field(default=2.0, gt=0)
    legacy_media_fallback: bool = True
    default_target_format: TargetFormat = TargetFormat.JPEG
    jpeg_quality: int = Field(default=90, ge=1, le=100)

    store_url: Optional[str] = None
    access_token: Optional[str] = None

    def credentials(self) -> Optional[StoreCredentials]:
        """Credentials from the environment, if both parts are set."""
        if not self.store_url or not self.access_token:
            return None
        return StoreCredentials(store_url=self.store_url, access_token=self.access_token)
