"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Configuration management for ETOO.

This module provides a central location for all configuration settings in ETOO.
It handles environment variables, default values, and validation of configuration
parameters for the Octane connection, the import run and logging.
"""

import logging
import os
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


def _as_bool(value: Any) -> bool:
    return str(value).lower() in ("true", "1", "yes", "on")


class BaseConfig(BaseModel):
    """Base configuration class with common functionality."""

    ENV_PREFIX: ClassVar[str] = "ETOO_"

    @classmethod
    def from_env(cls, **overrides):
        """
        Create a configuration instance from environment variables.

        Args:
        ----
            **overrides: Key-value pairs that override environment variables

        """
        raise NotImplementedError("Subclasses must implement from_env method")

    @classmethod
    def get_env_var(cls, key: str, default: Any = None) -> Any:
        """
        Get an environment variable with the class prefix.

        Args:
        ----
            key: Key name without prefix
            default: Default value if environment variable is not found

        Returns:
        -------
            The environment variable value or default

        """
        env_key = f"{cls.ENV_PREFIX}{key.upper()}"
        return os.environ.get(env_key, default)


class LoggingConfig(BaseConfig):
    """Configuration for logging settings."""

    level: str = Field(
        default_factory=lambda: os.environ.get("ETOO_LOG_LEVEL", "INFO"),
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    use_rich: bool = Field(
        default=True,
        description="Whether to use rich for console log formatting",
    )
    log_file: str | None = Field(
        default=None,
        description="Path to the log file (None for console-only logging)",
    )
    json_format: bool = Field(
        default=False,
        description="Whether to use JSON format for logs",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, value):
        """Validate that the log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        value = value.upper()
        if value not in valid_levels:
            logger.warning(f"Invalid log level '{value}', defaulting to INFO")
            return "INFO"
        return value

    @classmethod
    def from_env(cls, **overrides) -> "LoggingConfig":
        """Create a logging configuration from environment variables."""
        config = {
            "level": cls.get_env_var("LOG_LEVEL", "INFO"),
            "use_rich": _as_bool(cls.get_env_var("LOG_USE_RICH", "true")),
            "log_file": cls.get_env_var("LOG_FILE", None),
            "json_format": _as_bool(cls.get_env_var("LOG_JSON", "false")),
        }
        config.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**config)

    def get_log_level_int(self) -> int:
        """Get the numeric logging level."""
        return getattr(logging, self.level)

    def configure_logging(self, debug: bool = False) -> None:
        """
        Configure logging based on the settings.

        Args:
        ----
            debug: Whether to force debug mode

        """
        from etoo.core.logging import configure_logging as configure_contextual_logging

        configure_contextual_logging(
            level=logging.DEBUG if debug else self.get_log_level_int(),
            log_file=self.log_file,
            json_format=self.json_format,
            use_rich=self.use_rich,
            debug=debug,
        )


class OctaneConfig(BaseConfig):
    """Configuration for the ALM Octane REST API."""

    server: str = Field(
        ...,
        description="Octane server URL (e.g., https://octane.example.com)",
    )
    shared_space_id: int = Field(
        ...,
        description="Shared space to import into",
        ge=0,
    )
    workspace_id: int = Field(
        ...,
        description="Workspace to import into",
        ge=0,
    )
    user: str = Field(
        default="",
        description="User name for Octane authentication (not needed with an API key)",
    )
    password: str = Field(
        default="",
        description="Password for Octane authentication (not needed with an API key)",
    )
    client_id: str = Field(
        default="",
        description="API access client id",
    )
    client_secret: str = Field(
        default="",
        description="API access client secret",
    )
    proxy_host: str | None = Field(
        default=None,
        description="HTTP(S) proxy host",
    )
    proxy_port: int | None = Field(
        default=None,
        description="HTTP(S) proxy port",
    )
    timeout: float = Field(
        default=30.0,
        description="API request timeout in seconds",
    )

    @field_validator("server")
    @classmethod
    def validate_server(cls, value):
        """Validate server URL format."""
        if not value:
            raise ValueError("server must be provided")

        if not value.startswith(("http://", "https://")):
            value = f"https://{value}"
        return value.rstrip("/")

    @model_validator(mode="after")
    def validate_auth_method(self):
        """Validate that either user/password or an API key is provided."""
        if not (self.client_id and self.client_secret) and not (self.user and self.password):
            raise ValueError(
                "Either client_id/client_secret or user/password combination must be provided.",
            )
        return self

    @property
    def workspace_url(self) -> str:
        """REST root of the configured workspace."""
        return (
            f"{self.server}/api/shared_spaces/{self.shared_space_id}"
            f"/workspaces/{self.workspace_id}"
        )

    @property
    def proxies(self) -> dict[str, str] | None:
        """Proxy mapping for requests, or None when no proxy is configured."""
        if not self.proxy_host:
            return None
        address = self.proxy_host
        if not address.startswith(("http://", "https://")):
            address = f"http://{address}"
        if self.proxy_port:
            address = f"{address}:{self.proxy_port}"
        return {"http": address, "https": address}

    @classmethod
    def from_env(cls, **overrides) -> "OctaneConfig":
        """Create an Octane configuration from environment variables."""
        proxy_port = cls.get_env_var("OCTANE_PROXY_PORT")
        config = {
            "server": cls.get_env_var("OCTANE_SERVER", ""),
            "shared_space_id": int(cls.get_env_var("OCTANE_SHARED_SPACE", "0")),
            "workspace_id": int(cls.get_env_var("OCTANE_WORKSPACE", "0")),
            "user": cls.get_env_var("OCTANE_USER", ""),
            "password": cls.get_env_var("OCTANE_PASSWORD", ""),
            "client_id": cls.get_env_var("OCTANE_CLIENT_ID", ""),
            "client_secret": cls.get_env_var("OCTANE_CLIENT_SECRET", ""),
            "proxy_host": cls.get_env_var("OCTANE_PROXY_HOST"),
            "proxy_port": int(proxy_port) if proxy_port else None,
            "timeout": float(cls.get_env_var("OCTANE_TIMEOUT", "30.0")),
        }
        config.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**config)


class ImportConfig(BaseConfig):
    """Settings of one spreadsheet import run."""

    file_path: Path = Field(
        ...,
        description="Path to the .xlsx file with the tests to import",
    )
    default_user_email: str = Field(
        ...,
        description="Email of the user used when an owner or designer cannot be found",
    )
    default_release_name: str = Field(
        default="1",
        description="Release used when a release UDF value cannot be found",
    )
    default_test_type_name: str = Field(
        default="End to End",
        description="Test type used when the test_type column is blank",
    )
    upload_workers: int = Field(
        default_factory=lambda: max(1, (os.cpu_count() or 2) - 1),
        description="Number of threads uploading step scripts",
        ge=1,
    )
    udf_config_path: Path | None = Field(
        default=None,
        description="Optional YAML file overriding the user-defined field table",
    )

    @field_validator("default_user_email")
    @classmethod
    def validate_default_user_email(cls, value):
        """Validate that a default user is provided."""
        if not value or "@" not in value:
            raise ValueError("default_user_email must be an email address")
        return value.strip()

    @classmethod
    def from_env(cls, **overrides) -> "ImportConfig":
        """Create an import configuration from environment variables."""
        config = {
            "file_path": cls.get_env_var("IMPORT_FILE", ""),
            "default_user_email": cls.get_env_var("DEFAULT_USER", ""),
            "default_release_name": cls.get_env_var("DEFAULT_RELEASE", "1"),
            "default_test_type_name": cls.get_env_var("DEFAULT_TEST_TYPE", "End to End"),
            "udf_config_path": cls.get_env_var("UDF_CONFIG"),
        }
        workers = cls.get_env_var("UPLOAD_WORKERS")
        if workers:
            config["upload_workers"] = int(workers)
        config.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**config)


class AppConfig(BaseConfig):
    """Main application configuration that aggregates all other configurations."""

    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )
    octane: OctaneConfig | None = Field(
        default=None,
        description="Octane API configuration",
    )
    importer: ImportConfig | None = Field(
        default=None,
        description="Import run configuration",
    )
    debug: bool = Field(
        default=False,
        description="Debug mode flag",
    )
    app_name: str = Field(
        default="ETOO",
        description="Application name",
    )
    app_version: str = Field(
        default="0.0.0",
        description="Application version",
    )

    @classmethod
    def from_env(cls, **overrides) -> "AppConfig":
        """Create an application configuration from environment variables."""
        config = {
            "logging": LoggingConfig.from_env(),
            "debug": _as_bool(cls.get_env_var("DEBUG", "false")),
            "app_name": cls.get_env_var("APP_NAME", "ETOO"),
            "app_version": cls.get_env_var("APP_VERSION", "0.0.0"),
        }
        config.update(overrides)
        return cls(**config)

    def configure_logging(self) -> None:
        """Configure logging based on the settings."""
        self.logging.configure_logging(debug=self.debug)


_app_config = None


def get_app_config() -> AppConfig:
    """Get the global application configuration."""
    global _app_config
    if _app_config is None:
        _app_config = AppConfig.from_env()
    return _app_config


def init_app_config(config: AppConfig = None, **kwargs) -> AppConfig:
    """
    Initialize the global application configuration.

    Args:
    ----
        config: An existing AppConfig instance
        **kwargs: Key-value pairs for creating a new AppConfig

    Returns:
    -------
        The application configuration instance

    """
    global _app_config
    _app_config = config if config is not None else AppConfig.from_env(**kwargs)
    return _app_config
