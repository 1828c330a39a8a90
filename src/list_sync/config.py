"""
List Sync Configuration System.

Type-safe settings built on Pydantic. Settings can be loaded from:
1. Environment variables (prefixed with LIST_SYNC_, nested with __)
2. Config file (TOML or JSON)
3. CLI arguments (highest priority)

Example usage:
    from list_sync.config import Settings

    # Load from environment
    settings = Settings()

    # Or with explicit values
    settings = Settings(
        site_url="https://contoso.sharepoint.com/sites/ops",
        list_name="Requests",
        mirror={"backend": "s3", "bucket": "ops-mirror", "region": "eu-west-1"},
    )
"""

from __future__ import annotations

import json
import re
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from list_sync.errors import ConfigurationError


class MirrorBackend(str, Enum):
    """Destination store for mirrored objects."""

    S3 = "s3"
    FILESYSTEM = "filesystem"


class AuthConfig(BaseModel):
    """Credentials for the list source."""

    tenant_id: str = Field(
        default="",
        description="Directory (tenant) ID used for the token endpoint",
    )
    client_id: str = Field(
        default="",
        description="Application (client) ID",
    )
    client_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Client secret for the client-credentials grant",
    )
    private_key_path: Path | None = Field(
        default=None,
        description="PEM private key for certificate authentication (used instead of client_secret)",
    )
    certificate_thumbprint: str = Field(
        default="",
        description="Hex SHA-1 thumbprint of the certificate matching private_key_path",
    )
    access_token: SecretStr = Field(
        default=SecretStr(""),
        description="Pre-issued bearer token (skips the token endpoint)",
    )
    authority_host: str = Field(
        default="https://login.microsoftonline.com",
        description="OAuth2 authority host",
    )

    @field_validator("certificate_thumbprint", mode="after")
    @classmethod
    def normalize_thumbprint(cls, v: str) -> str:
        return v.replace(":", "").replace(" ", "").upper()


class MirrorConfig(BaseModel):
    """Object-store destination configuration."""

    backend: MirrorBackend = Field(
        default=MirrorBackend.S3,
        description="Mirror backend: s3 or filesystem",
    )
    bucket: str = Field(
        default="",
        description="S3 bucket name",
    )
    region: str = Field(
        default="",
        description="AWS region of the bucket",
    )
    access_key_id: str = Field(
        default="",
        description="Explicit AWS access key (empty = default credential chain)",
    )
    secret_access_key: SecretStr = Field(
        default=SecretStr(""),
        description="Explicit AWS secret key",
    )
    endpoint_url: str | None = Field(
        default=None,
        description="Custom S3 endpoint (MinIO, localstack)",
    )
    root_dir: Path = Field(
        default=Path("mirror"),
        description="Root directory for the filesystem backend",
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="S3 connect timeout in seconds",
    )
    read_timeout: float = Field(
        default=60.0,
        gt=0,
        description="S3 read timeout in seconds",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="botocore retry attempts per call",
    )


class SyncOptions(BaseModel):
    """Options controlling the sync loop."""

    poll_interval_seconds: int = Field(
        default=300,
        ge=1,
        description="Seconds to wait between successful cycles",
    )
    run_once: bool = Field(
        default=False,
        description="Run a single cycle and exit",
    )
    skip_unchanged: bool = Field(
        default=False,
        description="Do not re-upload records whose modified time did not advance",
    )
    retry_delay_seconds: int = Field(
        default=60,
        ge=0,
        description="Seconds to wait after a failed cycle",
    )
    shutdown_grace_seconds: int = Field(
        default=30,
        ge=0,
        description="How long to wait for an in-flight cycle on shutdown",
    )
    page_size: int = Field(
        default=5000,
        ge=1,
        le=5000,
        description="Items requested per listing page",
    )
    request_timeout: float = Field(
        default=60.0,
        gt=0,
        description="HTTP timeout for list source requests",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Log level",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path (None = console only)",
    )
    format: str = Field(
        default="rich",
        pattern="^(rich|json|simple)$",
        description="Log format: rich (colored), json, or simple",
    )
    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Max log file size before rotation",
    )
    backup_count: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Number of rotated log files to keep",
    )


class Settings(BaseSettings):
    """
    Main settings class for List Sync.

    Settings are loaded in this priority (highest first):
    1. Explicit constructor arguments
    2. Environment variables (LIST_SYNC_* prefix)
    3. Config file (if specified)
    4. Defaults

    Example:
        export LIST_SYNC_SITE_URL="https://contoso.sharepoint.com/sites/ops"
        export LIST_SYNC_LIST_NAME="Requests"
        export LIST_SYNC_MIRROR__BUCKET="ops-mirror"
        export LIST_SYNC_SYNC__SKIP_UNCHANGED=true
        settings = Settings()
    """

    model_config = SettingsConfigDict(
        env_prefix="LIST_SYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Source collection
    site_url: str = Field(
        default="",
        description="Site URL hosting the list",
    )
    list_name: str = Field(
        default="",
        description="Title of the list to mirror",
    )

    # Destination
    prefix: str = Field(
        default="",
        description="Key prefix for every mirrored object",
    )

    # Nested configs
    auth: AuthConfig = Field(default_factory=AuthConfig)
    mirror: MirrorConfig = Field(default_factory=MirrorConfig)
    sync: SyncOptions = Field(default_factory=SyncOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("site_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def site_origin(self) -> str:
        """Scheme and host of the site, e.g. https://contoso.sharepoint.com."""
        parts = urlsplit(self.site_url)
        return f"{parts.scheme}://{parts.netloc}"

    @classmethod
    def from_file(cls, path: Path | str) -> "Settings":
        """Load settings from a TOML or JSON config file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        content = path.read_text()

        if path.suffix in (".toml", ".tml"):
            data = tomllib.loads(content)
        elif path.suffix == ".json":
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")

        return cls.model_validate(data)

    def masked_dump(self) -> dict[str, Any]:
        """Settings as plain data with every secret redacted."""
        data = self.model_dump(mode="json", exclude_none=True)
        for section, key in (
            ("auth", "client_secret"),
            ("auth", "access_token"),
            ("mirror", "secret_access_key"),
        ):
            if data.get(section, {}).get(key):
                data[section][key] = "***REDACTED***"
        return data

    def validate_required(self) -> list[str]:
        """Check that required settings are present. Returns list of errors."""
        errors = []
        if not self.site_url:
            errors.append("site_url is required")
        elif not urlsplit(self.site_url).netloc:
            errors.append(f"site_url is not an absolute URL: {self.site_url}")
        if not self.list_name:
            errors.append("list_name is required")

        if not self.auth.access_token.get_secret_value():
            if not self.auth.tenant_id:
                errors.append("auth.tenant_id is required")
            if not self.auth.client_id:
                errors.append("auth.client_id is required")
            if self.auth.private_key_path is not None:
                errors.extend(self._certificate_problems())
            elif not self.auth.client_secret.get_secret_value():
                errors.append("auth.client_secret or auth.private_key_path is required")

        if self.mirror.backend == MirrorBackend.S3:
            if not self.mirror.bucket:
                errors.append("mirror.bucket is required for the s3 backend")
            if not self.mirror.region:
                errors.append("mirror.region is required for the s3 backend")
        return errors

    def _certificate_problems(self) -> list[str]:
        problems = []
        if not self.auth.private_key_path.is_file():
            problems.append(f"auth.private_key_path does not exist: {self.auth.private_key_path}")
        thumbprint = self.auth.certificate_thumbprint
        if not thumbprint:
            problems.append("auth.certificate_thumbprint is required with auth.private_key_path")
        elif not re.fullmatch(r"[0-9A-F]{40}", thumbprint):
            problems.append("auth.certificate_thumbprint must be a 40-character hex SHA-1 digest")
        return problems

    def require_valid(self) -> None:
        """Raise ConfigurationError if any required setting is missing."""
        errors = self.validate_required()
        if errors:
            raise ConfigurationError(errors)


# Convenience function for loading settings
def load_settings(
    config_file: Path | str | None = None,
    **overrides: Any,
) -> Settings:
    """
    Load settings with optional config file and overrides.

    Args:
        config_file: Optional path to config file
        **overrides: Settings to override (highest priority)

    Returns:
        Configured Settings instance
    """
    if config_file:
        settings = Settings.from_file(config_file)
        if overrides:
            data = settings.model_dump()
            data.update(overrides)
            return Settings.model_validate(data)
        return settings
    return Settings(**overrides)
