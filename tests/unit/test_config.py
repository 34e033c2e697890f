"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Unit tests for configuration management module.

These tests verify that the configuration module correctly handles environment variables,
validation, and default values for the Octane connection, the import run and logging.
"""

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from etoo.core.config import (
    AppConfig,
    ImportConfig,
    LoggingConfig,
    OctaneConfig,
    get_app_config,
    init_app_config,
)


@pytest.mark.unit
class TestLoggingConfig:
    """Tests for the logging configuration."""

    def test_logging_config_validation(self):
        """Test that log level validation works."""
        for level in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            assert LoggingConfig(level=level).level == level

        assert LoggingConfig(level="debug").level == "DEBUG"
        # Invalid log level should default to INFO
        assert LoggingConfig(level="INVALID").level == "INFO"

    def test_get_log_level_int(self):
        assert LoggingConfig(level="DEBUG").get_log_level_int() == logging.DEBUG
        assert LoggingConfig(level="ERROR").get_log_level_int() == logging.ERROR

    @patch.dict(os.environ, {"ETOO_LOG_LEVEL": "WARNING", "ETOO_LOG_JSON": "true"})
    def test_from_env(self):
        config = LoggingConfig.from_env()
        assert config.level == "WARNING"
        assert config.json_format is True

    @patch.dict(os.environ, {"ETOO_LOG_LEVEL": "WARNING"})
    def test_from_env_overrides_win(self):
        config = LoggingConfig.from_env(level="ERROR", log_file=None)
        assert config.level == "ERROR"
        assert config.log_file is None

    @patch("etoo.core.logging.configure_logging")
    def test_configure_logging_debug_forces_debug_level(self, mock_configure):
        config = LoggingConfig(level="INFO")
        config.configure_logging(debug=True)
        assert mock_configure.call_args.kwargs["level"] == logging.DEBUG

        mock_configure.reset_mock()
        config.configure_logging()
        assert mock_configure.call_args.kwargs["level"] == logging.INFO


@pytest.mark.unit
class TestOctaneConfig:
    """Tests for the Octane connection configuration."""

    def test_server_is_normalized(self):
        config = OctaneConfig(
            server="octane.example.com/",
            shared_space_id=1001,
            workspace_id=1002,
            user="importer",
            password="secret",
        )
        assert config.server == "https://octane.example.com"
        assert config.workspace_url == (
            "https://octane.example.com/api/shared_spaces/1001/workspaces/1002"
        )

    def test_credentials_are_required(self):
        with pytest.raises(ValidationError):
            OctaneConfig(server="https://octane.example.com", shared_space_id=1, workspace_id=2)

    def test_api_key_is_enough(self):
        config = OctaneConfig(
            server="https://octane.example.com",
            shared_space_id=1,
            workspace_id=2,
            client_id="key",
            client_secret="value",
        )
        assert config.user == ""

    def test_proxies(self, octane_config):
        assert octane_config.proxies is None

        config = octane_config.model_copy(update={"proxy_host": "proxy.local", "proxy_port": 8080})
        assert config.proxies == {
            "http": "http://proxy.local:8080",
            "https": "http://proxy.local:8080",
        }

    @patch.dict(
        os.environ,
        {
            "ETOO_OCTANE_SERVER": "https://env.example.com",
            "ETOO_OCTANE_SHARED_SPACE": "7",
            "ETOO_OCTANE_WORKSPACE": "8",
            "ETOO_OCTANE_USER": "env-user",
            "ETOO_OCTANE_PASSWORD": "env-password",
            "ETOO_OCTANE_PROXY_PORT": "3128",
        },
    )
    def test_from_env(self):
        config = OctaneConfig.from_env(workspace_id=9, user=None)
        assert config.server == "https://env.example.com"
        assert config.shared_space_id == 7
        assert config.workspace_id == 9
        assert config.user == "env-user"
        assert config.proxy_port == 3128


@pytest.mark.unit
class TestImportConfig:
    """Tests for the import run configuration."""

    def test_defaults(self):
        config = ImportConfig(file_path="tests.xlsx", default_user_email=" qa@example.com ")
        assert config.file_path == Path("tests.xlsx")
        assert config.default_user_email == "qa@example.com"
        assert config.default_release_name == "1"
        assert config.default_test_type_name == "End to End"
        assert config.upload_workers >= 1
        assert config.udf_config_path is None

    def test_default_user_must_be_an_email(self):
        with pytest.raises(ValidationError):
            ImportConfig(file_path="tests.xlsx", default_user_email="nobody")

    def test_upload_workers_must_be_positive(self):
        with pytest.raises(ValidationError):
            ImportConfig(file_path="tests.xlsx", default_user_email="qa@example.com", upload_workers=0)

    @patch.dict(
        os.environ,
        {"ETOO_DEFAULT_USER": "env@example.com", "ETOO_UPLOAD_WORKERS": "3"},
    )
    def test_from_env(self):
        config = ImportConfig.from_env(file_path=Path("other.xlsx"), default_release_name="R2")
        assert config.default_user_email == "env@example.com"
        assert config.upload_workers == 3
        assert config.default_release_name == "R2"
        assert config.file_path == Path("other.xlsx")


@pytest.mark.unit
class TestAppConfig:
    """Tests for the global application configuration."""

    def test_init_app_config_replaces_global(self):
        config = init_app_config(debug=True, app_version="9.9.9")
        assert config.debug is True
        assert get_app_config() is config

        other = AppConfig(app_version="1.0.0")
        assert init_app_config(other) is other
        assert get_app_config().app_version == "1.0.0"
