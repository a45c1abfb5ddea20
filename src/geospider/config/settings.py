"""
Configuration management using Pydantic Settings.
Supports environment variables, .env files and YAML configuration files.
"""

from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic.alias_generators import to_snake
from pydantic_settings import BaseSettings, SettingsConfigDict

from geospider.errors import ConfigurationError

LOCATION_SOURCES = {"simulated", "gpsd"}
HTTP_SCHEMES = {"http", "https"}
OBJECT_STORE_SCHEMES = {"s3", "gs", "az", "azure"}


class RuntimeConfig(BaseSettings):
    """Collection and sync configuration. Immutable once loaded."""

    # Remote endpoint (http(s):// for HTTP POST, s3:// gs:// az:// for object stores)
    server_url: str = Field(description="Absolute URL batches are sent to")

    # Collection
    collection_interval_seconds: int = Field(
        default=60, description="Seconds between location readings", gt=0
    )
    location_source: str = Field(
        default="simulated", description="Location source: simulated or gpsd"
    )
    gpsd_host: str = Field(default="127.0.0.1", description="gpsd host")
    gpsd_port: int = Field(default=2947, description="gpsd port", gt=0, le=65535)

    # Sync
    sync_batch_size: int = Field(default=50, description="Samples per sync batch", gt=0)
    sync_interval_seconds: int = Field(
        default=300, description="Seconds between automatic sync attempts", gt=0
    )
    http_timeout_seconds: float = Field(
        default=30.0, description="Timeout for one HTTP batch upload", gt=0
    )
    probe_host: str = Field(default="1.1.1.1", description="Host used for the online check")
    probe_port: int = Field(default=53, description="Port used for the online check", gt=0)

    # Offline storage
    max_offline_storage_days: int = Field(
        default=7, description="Days a sample is kept before eviction", gt=0
    )
    data_dir: Path = Field(default=Path("data"), description="Directory for the offline store")
    compression: str = Field(
        default="zstd", description="Compression codec for Parquet files (snappy, zstd, gzip)"
    )

    model_config = SettingsConfigDict(
        env_prefix="GEOSPIDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Require an absolute URL with a host and a scheme some transport handles."""
        v = v.strip()
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"'{v}' must be a valid absolute URL")
        if parsed.scheme.lower() not in HTTP_SCHEMES | OBJECT_STORE_SCHEMES:
            raise ValueError(
                f"Unsupported URL scheme '{parsed.scheme}'. Must be one of: "
                f"{', '.join(sorted(HTTP_SCHEMES | OBJECT_STORE_SCHEMES))}"
            )
        return v

    @field_validator("location_source")
    @classmethod
    def validate_location_source(cls, v: str) -> str:
        """Validate location source is supported."""
        v_lower = v.lower()
        if v_lower not in LOCATION_SOURCES:
            raise ValueError(
                f"Invalid location source '{v}'. Must be one of: "
                f"{', '.join(sorted(LOCATION_SOURCES))}"
            )
        return v_lower

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Path | str) -> Path:
        """Expand ~ in paths."""
        return Path(v).expanduser().resolve()

    @property
    def store_path(self) -> Path:
        """Parquet file backing the offline store."""
        return self.data_dir / "samples.parquet"


class StorageConfig(BaseSettings):
    """Object store credentials, used when server_url is s3://, gs:// or az://."""

    storage_region: str = Field(default="us-west-2", description="Storage region")
    storage_endpoint: str | None = Field(default=None, description="Custom endpoint URL")

    # S3-compatible credentials
    aws_access_key_id: str | None = Field(default=None, description="Access key ID")
    aws_secret_access_key: str | None = Field(default=None, description="Secret access key")

    # Google Cloud Storage credentials
    gcs_service_account_path: str | None = Field(
        default=None, description="Path to GCS service account JSON file"
    )

    # Azure credentials
    azure_storage_account: str | None = Field(default=None, description="Azure storage account")
    azure_storage_key: str | None = Field(default=None, description="Azure storage account key")
    azure_sas_token: str | None = Field(default=None, description="Azure SAS token")

    model_config = SettingsConfigDict(
        env_prefix="GEOSPIDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class AppConfig(BaseSettings):
    """Application-wide configuration."""

    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Path = Field(default=Path("logs"), description="Directory for log files")

    model_config = SettingsConfigDict(
        env_prefix="GEOSPIDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Path | str) -> Path:
        """Expand ~ in paths."""
        return Path(v).expanduser().resolve()


def load_config(path: Path | None = None) -> RuntimeConfig:
    """
    Load and validate the runtime configuration.

    Args:
        path: Optional YAML file. Without it, settings come from the
            environment and the .env file.

    Returns:
        Validated, immutable RuntimeConfig

    Raises:
        ConfigurationError: if the source is missing, malformed or invalid
    """
    if path is None:
        try:
            return RuntimeConfig()
        except ValidationError as e:
            raise ConfigurationError(_describe(e)) from e

    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e

    return load_config_from_yaml(content)


def load_config_from_yaml(content: str) -> RuntimeConfig:
    """
    Parse a YAML document into a RuntimeConfig.

    Keys may be camelCase (serverUrl) or snake_case (server_url).
    """
    if not content or not content.strip():
        raise ConfigurationError("YAML content cannot be empty")

    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML format: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration must be a YAML mapping")

    data: dict[str, Any] = {to_snake(str(key)): value for key, value in raw.items()}
    if data.get("server_url") in (None, ""):
        raise ConfigurationError("serverUrl is required")

    try:
        return RuntimeConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(_describe(e)) from e


def _describe(error: ValidationError) -> str:
    """Flatten pydantic errors into one readable line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "config"
        parts.append(f"{location}: {item['msg']}")
    return "Invalid configuration - " + "; ".join(parts)
