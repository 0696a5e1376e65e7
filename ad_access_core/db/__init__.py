"""
SQLAlchemy models and database plumbing.

This module provides a common entry point for all models.
"""

from .db_base import (
    JSON,
    EncryptedBinary,
    TimestampMixin,
    UUIDMixin,
    as_utc,
    utc_now,
)
from .db_config import (
    Base,
    DatabaseConfig,
    DatabaseManager,
    get_production_config,
    import_all_models,
)
from .db_credential_models import Credential
from .db_permission_models import PermissionAssignment, WorkspaceOwner
from .db_principal_models import Agency, DelegationLink, PlatformAccount

__all__ = [
    # Base definitions
    "Base",
    "JSON",
    "EncryptedBinary",
    "TimestampMixin",
    "UUIDMixin",
    "as_utc",
    "utc_now",
    # Configuration
    "DatabaseConfig",
    "DatabaseManager",
    "import_all_models",
    "get_production_config",
    # Models
    "Agency",
    "Credential",
    "DelegationLink",
    "PermissionAssignment",
    "PlatformAccount",
    "WorkspaceOwner",
]
