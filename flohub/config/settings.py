"""Settings management using Pydantic for type validation and configuration."""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field, PrivateAttr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "FLOHUB_"

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
MICROSOFT_TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"


class FloHubSettings(BaseSettings):
    """Application settings with environment variable and YAML file support.

    Precedence, highest first: constructor arguments, ``FLOHUB_*`` environment
    variables, the YAML config file, field defaults.
    """

    _explicit_args: set = PrivateAttr(default_factory=set)
    _env_vars_set: set = PrivateAttr(default_factory=set)

    # Application
    app_name: str = Field(default="FloHub", description="Application name")
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".local" / "share" / "flohub",
        description="Directory holding per-user settings documents",
    )
    config_file: Optional[Path] = Field(default=None, description="Explicit YAML config path")
    default_timezone: str = Field(default="UTC", description="Fallback IANA timezone")

    # Web server
    web_host: str = Field(default="127.0.0.1", description="Bind address for the API server")
    web_port: int = Field(default=8080, description="Port for the API server")
    api_token: Optional[str] = Field(
        default=None, description="Optional bearer token required on every API request"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_file: Optional[Path] = Field(default=None, description="Optional rotating log file")

    # Outbound HTTP
    request_timeout: float = Field(default=10.0, description="Per-request HTTP timeout (seconds)")
    source_timeout: float = Field(
        default=20.0, description="Upper bound for one source fetch inside an aggregation"
    )
    max_retries: int = Field(default=1, description="Retries for transient network failures")
    retry_backoff_factor: float = Field(default=1.5, description="Exponential backoff factor")
    allow_private_urls: bool = Field(
        default=False, description="Permit webhook/iCal URLs that resolve to private networks"
    )

    # OAuth
    google_client_id: Optional[str] = Field(default=None, description="Google OAuth client id")
    google_client_secret: Optional[str] = Field(default=None, description="Google OAuth secret")
    google_token_url: str = Field(default=GOOGLE_TOKEN_URL, description="Google token endpoint")
    microsoft_client_id: Optional[str] = Field(default=None, description="Microsoft client id")
    microsoft_client_secret: Optional[str] = Field(default=None, description="Microsoft secret")
    microsoft_tenant: str = Field(default="common", description="Microsoft identity tenant")

    # Aggregation
    event_cache_ttl: int = Field(default=300, description="Aggregated event cache TTL (seconds)")
    default_missing_start_to_now: bool = Field(
        default=False, description="Give events without a start the current instant"
    )

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    def __init__(self, **kwargs: Any) -> None:
        env_vars_set = {
            key[len(ENV_PREFIX) :].lower() for key in os.environ if key.startswith(ENV_PREFIX)
        }

        super().__init__(**kwargs)

        self._explicit_args = set(kwargs.keys())
        self._env_vars_set = env_vars_set

        self._load_yaml_config()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("source_timeout", "request_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be positive")
        return v

    @property
    def users_dir(self) -> Path:
        """Directory holding one JSON settings document per user."""
        return self.data_dir / "users"

    @property
    def microsoft_token_url(self) -> str:
        return MICROSOFT_TOKEN_URL_TEMPLATE.format(tenant=self.microsoft_tenant)

    def _find_config_file(self) -> Optional[Path]:
        """Find config file: explicit path, environment, working directory, then user home."""
        if self.config_file is not None:
            return self.config_file if self.config_file.exists() else None

        candidates = [
            Path.cwd() / "flohub.yaml",
            Path.home() / ".config" / "flohub" / "config.yaml",
        ]
        for candidate in candidates:
            if candidate.exists():
                return candidate
        return None

    def _load_yaml_config(self) -> None:
        """Load configuration from YAML file if it exists."""
        config_file = self._find_config_file()
        if not config_file:
            return

        try:
            with config_file.open() as f:
                config_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            # Don't fail if YAML loading fails, just continue with defaults/env vars
            logging.warning("Could not load YAML config from %s: %s", config_file, e)
            return

        if not isinstance(config_data, dict):
            return

        for key, value in config_data.items():
            if key not in type(self).model_fields or key == "config_file":
                logging.debug("Ignoring unknown config key: %s", key)
                continue
            if key in self._explicit_args or key in self._env_vars_set:
                continue
            if key in ("data_dir", "log_file") and value is not None:
                value = Path(value).expanduser()
            setattr(self, key, value)


@lru_cache(maxsize=1)
def get_settings() -> FloHubSettings:
    """Get the process-wide settings instance."""
    return FloHubSettings()
