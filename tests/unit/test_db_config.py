"""Tests for database configuration and the global manager."""

import pytest

from ad_access_core.db import DatabaseConfig, DatabaseManager
from ad_access_core.db.db_config import get_production_config
from ad_access_core.exceptions import ErrorCode, ServiceError, ValidationError


class TestDatabaseConfig:
    """Test connection string building."""

    def test_postgres_uses_psycopg_driver(self):
        config = DatabaseConfig(
            host="db.internal", database="ad_access", username="svc", password="pw"
        )

        assert config.get_connection_string() == (
            "postgresql+psycopg://svc:pw@db.internal:5432/ad_access"
        )

    def test_postgres_requires_credentials(self):
        with pytest.raises(ValidationError) as exc_info:
            DatabaseConfig(database="ad_access").get_connection_string()

        assert exc_info.value.error_code == ErrorCode.MISSING_REQUIRED

    def test_sqlite(self):
        config = DatabaseConfig(db_type="sqlite", database="/tmp/x.db")

        assert config.get_connection_string() == "sqlite:////tmp/x.db"

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            DatabaseConfig(db_type="oracle", database="x").get_connection_string()

    def test_repr_masks_password(self):
        config = DatabaseConfig(host="h", database="d", username="u", password="hunter2")

        assert "hunter2" not in repr(config)

    def test_production_config_from_env(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "pg.example.test")
        monkeypatch.setenv("DB_NAME", "access")

        config = get_production_config()

        assert config.host == "pg.example.test"
        assert config.database == "access"
        assert config.development_mode is False


class TestDatabaseManager:
    """Test session handling and table management."""

    def test_new_session_is_independent(self, db_manager):
        first = db_manager.new_session()
        second = db_manager.new_session()
        try:
            assert first is not second
            assert db_manager.get_session() is db_manager.get_session()
        finally:
            first.close()
            second.close()

    def test_drop_tables_outside_development(self, tmp_path):
        manager = DatabaseManager(
            DatabaseConfig(db_type="sqlite", database=str(tmp_path / "prod.db"))
        )
        try:
            with pytest.raises(ServiceError) as exc_info:
                manager.drop_tables()
        finally:
            manager.close()

        assert exc_info.value.error_code == ErrorCode.CONFIGURATION_ERROR
