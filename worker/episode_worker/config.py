"""
Worker Configuration

Settings class using pydantic-settings for environment variable loading.
Covers the Redis queue, MinIO object storage, encoder binaries, the HLS
rendition parameters and logging.
"""

from fractions import Fraction
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_aspect_ratio(value: str) -> Fraction:
    """
    Parse an aspect ratio string into an exact fraction.

    Accepts "16:9", "16/9" or a decimal such as "1.5".

    Raises:
        ValueError: If the value is not a positive ratio
    """
    text = value.strip().replace(":", "/")
    try:
        ratio = Fraction(text)
    except ZeroDivisionError:
        raise ValueError(f"Aspect ratio has a zero denominator: {value}") from None
    if ratio <= 0:
        raise ValueError(f"Aspect ratio must be positive: {value}")
    return ratio


class Settings(BaseSettings):
    """
    Worker settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For example, MINIO_BUCKET can be set via the MINIO_BUCKET env var.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="episode-worker", description="Worker name")
    app_env: str = Field(default="development", description="Deployment environment")

    # Logging
    log_to_console: bool = Field(
        default=False,
        alias="LOGGING",
        description="Log to stdout instead of log files",
    )
    log_dir: str = Field(default="logs", description="Directory for log files")

    # Redis queue
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_prefix: str = Field(
        default="",
        description="Key prefix configured on the Laravel redis connection",
    )
    queue_name: str = Field(default="transcode", description="Inbound job queue")
    status_queue_name: str = Field(default="default", description="Queue receiving status updates")
    queue_block_timeout: int = Field(
        default=0,
        ge=0,
        description="BLPOP timeout in seconds (0 blocks forever)",
    )
    queue_backoff_base: float = Field(
        default=0.5,
        gt=0,
        description="Initial reconnect delay in seconds",
    )
    queue_backoff_cap: float = Field(
        default=30.0,
        gt=0,
        description="Maximum reconnect delay in seconds",
    )

    # Command classes shared with the Laravel application
    process_command_class: str = Field(
        default="App\\Jobs\\ProcessEpisode",
        description="PHP class of the inbound transcode command",
    )
    status_command_class: str = Field(
        default="App\\Jobs\\EpisodeUpdated",
        description="PHP class of the outbound status command",
    )

    # MinIO / S3
    minio_endpoint: str = Field(default="localhost", description="Object storage host")
    minio_port: int = Field(default=9000, description="Object storage port")
    minio_use_ssl: bool = Field(default=False, description="Use HTTPS for object storage")
    minio_access_key: str = Field(default="sail", description="Object storage access key")
    minio_secret_key: str = Field(default="password", description="Object storage secret key")
    minio_bucket: str = Field(default="local", description="Bucket holding episodes")
    minio_region: str = Field(default="us-east-1", description="Bucket region")

    # Storage layout
    source_prefix: str = Field(default="uploads", description="Prefix of source episode objects")
    destination_prefix: str = Field(default="episodes", description="Prefix of processed outputs")
    work_dir: str = Field(
        default="/tmp/episode-worker",
        description="Local scratch directory for downloads and encoder output",
    )

    # Encoder
    ffmpeg_bin: str = Field(default="ffmpeg", description="Path to the ffmpeg binary")
    ffprobe_bin: str = Field(default="ffprobe", description="Path to the ffprobe binary")
    segment_duration: int = Field(default=5, gt=0, description="HLS segment length in seconds")
    aspect_ratio: str = Field(default="16:9", description="Output aspect ratio")
    encode_timeout: Optional[int] = Field(
        default=None,
        gt=0,
        description="Kill the encoder after this many seconds (unset: no limit)",
    )

    @field_validator("aspect_ratio")
    @classmethod
    def _validate_aspect_ratio(cls, value: str) -> str:
        parse_aspect_ratio(value)
        return value

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def aspect_fraction(self) -> Fraction:
        """Aspect ratio as an exact fraction."""
        return parse_aspect_ratio(self.aspect_ratio)

    @property
    def minio_endpoint_url(self) -> str:
        """Endpoint URL in the form boto3 expects."""
        scheme = "https" if self.minio_use_ssl else "http"
        return f"{scheme}://{self.minio_endpoint}:{self.minio_port}"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached worker settings instance.

    Uses lru_cache to ensure settings are only loaded once per process.

    Returns:
        Settings: Worker settings instance

    Example:
        >>> settings = get_settings()
        >>> print(settings.queue_name)
        transcode
    """
    return Settings()
