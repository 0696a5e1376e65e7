"""Pydantic schemas exchanged between services and their callers."""

from .credential_schemas import AuthorizationRequest, CredentialRead, ResolvedToken, TokenGrant
from .delegation_schemas import AgencyRead, DelegationLinkRead, PlatformAccountRead
from .permission_schemas import (
    BulkAssignmentItem,
    BulkAssignmentOutcome,
    BulkAssignmentResult,
    GrantHistoryEntry,
    PermissionAssignmentRead,
    validate_permission_id,
)

__all__ = [
    "AuthorizationRequest",
    "CredentialRead",
    "ResolvedToken",
    "TokenGrant",
    "AgencyRead",
    "DelegationLinkRead",
    "PlatformAccountRead",
    "BulkAssignmentItem",
    "BulkAssignmentOutcome",
    "BulkAssignmentResult",
    "GrantHistoryEntry",
    "PermissionAssignmentRead",
    "validate_permission_id",
]
