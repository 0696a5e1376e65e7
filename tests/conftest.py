"""
Test fixtures shared by unit and integration tests.

The database is a file-backed SQLite database so that worker threads (bulk
assignment, concurrent refresh) see the same tables as the test thread.
Tables are created and dropped around every test.
"""

import pytest
from sqlalchemy.orm import Session

from ad_access_core.config import AppConfig, reset_config, set_config
from ad_access_core.db import DatabaseConfig, DatabaseManager, import_all_models
from ad_access_core.db.db_config import close_db, initialize_db
from ad_access_core.providers.registry import ProviderRegistry
from ad_access_core.services.delegation_service import DelegationResolver
from ad_access_core.services.permission_service import PermissionService
from ad_access_core.services.permission_store import PermissionStore
from ad_access_core.services.token_lifecycle_service import TokenLifecycleManager
from ad_access_core.utils.logger import reset_logging
from ad_access_core.utils.single_flight import SingleFlight
from tests.fixtures.fake_providers import FakeProviderGateway, FrozenClock

# ==================== CONFIGURATION ====================


@pytest.fixture(autouse=True)
def app_config() -> AppConfig:
    """Fresh application config per test; the logs queue is never used."""
    config = AppConfig()
    config.features.enable_logs_queue = False
    config.providers.refresh_wait_seconds = 10
    set_config(config)
    yield config
    reset_config()
    reset_logging()


# ==================== DATABASE ====================


@pytest.fixture(scope="session")
def db_config(tmp_path_factory) -> DatabaseConfig:
    """SQLite database file shared by every thread of the test run."""
    path = tmp_path_factory.mktemp("db") / "ad_access_test.db"
    return DatabaseConfig(
        db_type="sqlite",
        database=str(path),
        echo=False,
        development_mode=True,
    )


@pytest.fixture(scope="session")
def db_manager(db_config: DatabaseConfig) -> DatabaseManager:
    """Create and initialize database manager with all models."""
    import_all_models()
    manager = initialize_db(db_config)
    yield manager
    close_db()


@pytest.fixture(scope="function")
def db_session(db_manager: DatabaseManager) -> Session:
    """
    Database session for each test.

    This is the thread's scoped session, so factories and services under
    test share it.
    """
    db_manager.create_tables()
    session = db_manager.get_session()

    yield session

    session.rollback()
    db_manager.close_session()
    db_manager.drop_tables()


# ==================== PROVIDERS ====================


@pytest.fixture(scope="function")
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture(scope="function")
def fake_gateway() -> FakeProviderGateway:
    return FakeProviderGateway()


@pytest.fixture(scope="function")
def registry(fake_gateway) -> ProviderRegistry:
    return ProviderRegistry([fake_gateway])


# ==================== SERVICES ====================


@pytest.fixture(scope="function")
def single_flight() -> SingleFlight:
    """Per-test refresh registry so tests never join each other's flights."""
    return SingleFlight()


@pytest.fixture(scope="function")
def token_manager(db_session, registry, single_flight, clock, app_config) -> TokenLifecycleManager:
    return TokenLifecycleManager(
        db_session, registry, single_flight=single_flight, clock=clock, config=app_config
    )


@pytest.fixture(scope="function")
def delegation_resolver(db_session, token_manager) -> DelegationResolver:
    return DelegationResolver(db_session, token_manager)


@pytest.fixture(scope="function")
def permission_store(db_session, db_manager, app_config) -> PermissionStore:
    return PermissionStore(db_session, session_factory=db_manager.new_session, config=app_config)


@pytest.fixture(scope="function")
def permission_service(db_session, permission_store, app_config) -> PermissionService:
    return PermissionService(db_session, store=permission_store, config=app_config)
