"""Service layer for credentials, delegation and permissions."""

from .credential_store import CredentialStore
from .delegation_service import DelegationResolver
from .permission_service import PermissionService
from .permission_store import PermissionStore
from .token_lifecycle_service import TokenLifecycleManager

__all__ = [
    "CredentialStore",
    "DelegationResolver",
    "PermissionService",
    "PermissionStore",
    "TokenLifecycleManager",
]
