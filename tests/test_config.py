"""Tests for configuration module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError

from sitedeploy.config import Settings, get_settings, print_settings_json


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should have sensible defaults."""
        settings = Settings(_env_file=None)

        data_dir = Path.home() / ".local" / "share" / "sitedeploy"
        assert settings.data_dir == data_dir
        assert settings.staging_dir == data_dir / "staging"
        assert settings.artifacts_dir == data_dir / "deployments"
        assert settings.cache_dir == data_dir / "cache" / "dependencies"
        assert settings.db_url == f"sqlite:///{data_dir / 'sitedeploy.sqlite'}"
        assert settings.port == 1234
        assert settings.build_timeout == 300
        assert settings.busy_interval == 1.0
        assert settings.cache_keep == 3
        assert settings.output_dirs == ["dist", "build", "out"]

    def test_paths_follow_data_dir(self, tmp_path: Path) -> None:
        """Unset directories should be derived from data_dir."""
        settings = Settings(data_dir=tmp_path)
        assert settings.staging_dir == tmp_path / "staging"
        assert settings.artifacts_dir == tmp_path / "deployments"

    def test_explicit_paths_win(self, tmp_path: Path) -> None:
        """Explicit directories should not be overridden."""
        settings = Settings(data_dir=tmp_path, artifacts_dir=tmp_path / "out")
        assert settings.artifacts_dir == tmp_path / "out"

    def test_settings_from_env(self) -> None:
        """Settings should be loadable from environment variables."""
        with patch.dict(
            os.environ,
            {
                "SITEDEPLOY_LOG_LEVEL": "DEBUG",
                "SITEDEPLOY_BUILD_TIMEOUT": "42",
                "SITEDEPLOY_EMBEDDED_WORKER": "false",
                "SITEDEPLOY_POST_BUILD_WEBHOOK_URL": "http://hooks.local/done",
            },
        ):
            settings = Settings()
            assert settings.log_level == "DEBUG"
            assert settings.build_timeout == 42
            assert settings.embedded_worker is False
            assert settings.post_build_webhook_url == "http://hooks.local/done"

    def test_invalid_values_rejected(self) -> None:
        """Out-of-range values should fail validation."""
        with pytest.raises(PydanticValidationError):
            Settings(cache_keep=0)
        with pytest.raises(PydanticValidationError):
            Settings(log_level="VERBOSE")

    def test_artifact_url(self) -> None:
        """artifact_url should join base URL and job id with a trailing slash."""
        settings = Settings(public_base_url="https://sites.example.com/")
        assert (
            settings.artifact_url("abc")
            == "https://sites.example.com/deployments/abc/"
        )


class TestGetSettings:
    """Test get_settings function."""

    def test_returns_settings(self) -> None:
        """get_settings should return a Settings instance."""
        assert isinstance(get_settings(), Settings)

    def test_reads_environment_each_call(self) -> None:
        """get_settings should reflect the current environment."""
        with patch.dict(os.environ, {"SITEDEPLOY_PORT": "8080"}):
            assert get_settings().port == 8080


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_valid_json(self, tmp_path: Path) -> None:
        """Output should be valid JSON with stable keys."""
        data = json.loads(print_settings_json(Settings(data_dir=tmp_path)))
        assert data["data_dir"] == str(tmp_path)
        assert data["artifacts_dir"] == str(tmp_path / "deployments")
        assert "build_command" in data
        assert "cache_keep" in data
