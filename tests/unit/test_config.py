"""Tests for configuration loading and validation."""

import pytest
from pydantic import ValidationError

from ad_access_core.config import (
    AppConfig,
    PermissionConfig,
    ProviderConfig,
    get_config,
    reset_config,
    set_config,
)
from ad_access_core.constants import Limits, MetaGraph, Timeouts


class TestDefaults:
    """Test default values."""

    def test_provider_defaults(self, monkeypatch):
        monkeypatch.delenv("META_API_VERSION", raising=False)
        monkeypatch.delenv("PROVIDER_TIMEOUT_SECONDS", raising=False)

        config = ProviderConfig()

        assert config.meta_api_version == MetaGraph.DEFAULT_API_VERSION
        assert config.request_timeout_seconds == Timeouts.PROVIDER_REQUEST
        assert config.long_lived_expires_in == MetaGraph.DEFAULT_LONG_LIVED_EXPIRES_IN

    def test_permission_defaults(self, monkeypatch):
        monkeypatch.delenv("PERMISSION_BULK_MAX_WORKERS", raising=False)
        monkeypatch.delenv("PERMISSION_ADMIN_IDENTIFIER", raising=False)
        monkeypatch.delenv("UNIFY_DENIALS", raising=False)

        config = PermissionConfig()

        assert config.bulk_max_workers == Limits.DEFAULT_BULK_MAX_WORKERS
        assert config.admin_identifier == "user:update"
        assert config.unify_denials is True


class TestEnvironment:
    """Test environment variable overrides."""

    def test_provider_env(self, monkeypatch):
        monkeypatch.setenv("META_APP_ID", "app-from-env")
        monkeypatch.setenv("META_API_VERSION", "v19.0")
        monkeypatch.setenv("PROVIDER_TIMEOUT_SECONDS", "3.5")

        config = ProviderConfig()

        assert config.meta_app_id == "app-from-env"
        assert config.meta_api_version == "v19.0"
        assert config.request_timeout_seconds == 3.5

    def test_permission_env(self, monkeypatch):
        monkeypatch.setenv("PERMISSION_BULK_MAX_WORKERS", "8")
        monkeypatch.setenv("UNIFY_DENIALS", "false")

        config = PermissionConfig()

        assert config.bulk_max_workers == 8
        assert config.unify_denials is False


class TestValidation:
    """Test rejected values."""

    def test_api_version_format(self):
        with pytest.raises(ValidationError):
            ProviderConfig(meta_api_version="18.0")

    @pytest.mark.parametrize("workers", [0, Limits.MAX_BULK_MAX_WORKERS + 1])
    def test_bulk_workers_bounds(self, workers):
        with pytest.raises(ValidationError):
            PermissionConfig(bulk_max_workers=workers)

    def test_log_level(self):
        with pytest.raises(ValidationError):
            AppConfig(logging={"level": "LOUD"})


class TestGlobalConfig:
    """Test the process-wide instance."""

    def test_set_and_reset(self):
        custom = AppConfig(custom={"feature": "on"})
        set_config(custom)
        assert get_config() is custom
        assert get_config().get_custom("feature") == "on"

        reset_config()
        assert get_config() is not custom
