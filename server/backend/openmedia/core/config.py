# Application settings and environment variable loading (Pydantic BaseSettings)

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Security Settings (Required - no defaults for secrets)
    api_token: str
    webhook_secret: Optional[str] = None

    # MinIO/S3 Settings (Required - no defaults for credentials)
    s3_endpoint: str
    s3_access_key: str
    s3_secret_key: str
    s3_bucket: str
    s3_secure: bool = Field(default=False)

    # Transcoding engine
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None
    work_dir: Optional[str] = None  # Scratch root, system temp dir when unset
    segment_duration: int = Field(default=10, ge=1)
    thumbnail_interval: int = Field(default=10, ge=1)
    generate_thumbnails: bool = Field(default=True)
    probe_timeout: int = Field(default=30)

    # Worker pool
    max_concurrent_jobs: int = Field(default=2, ge=1)

    # Outbound HTTP
    download_timeout: float = Field(default=300.0)
    webhook_timeout: float = Field(default=10.0)

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def effective_webhook_secret(self) -> str:
        """Webhook signing key, falls back to the API token"""
        return self.webhook_secret or self.api_token


@lru_cache()
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
