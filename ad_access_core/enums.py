"""
Enums used across the ad_access_core package.

This module contains enum definitions that are used by models, services and
schemas alike, kept here to avoid circular import issues.
"""

import enum
from typing import FrozenSet

PERMISSION_SEPARATOR = ":"


class Platform(str, enum.Enum):
    """External advertising platforms a principal can connect to."""

    META = "meta"
    LINKEDIN = "linkedin"
    TWITTER = "twitter"
    SNAPCHAT = "snapchat"


class PrincipalType(str, enum.Enum):
    """Kinds of principal that can own a credential."""

    ACCOUNT = "account"
    AGENCY = "agency"


class CredentialStatus(str, enum.Enum):
    """Lifecycle status of a stored credential."""

    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"
    INVALID = "invalid"
    PENDING = "pending"


class AuthType(str, enum.Enum):
    """How a credential was obtained."""

    OAUTH2 = "oauth2"
    SYSTEM_USER = "system_user"
    API_KEY = "api_key"


class Resource(str, enum.Enum):
    """Resources guarded by workspace permissions."""

    WORKSPACE = "workspace"
    CAMPAIGN = "campaign"
    DESIGNER = "designer"
    PUBLISHER = "publisher"
    USER = "user"
    AGENCY = "agency"
    SOCIAL_MEDIA = "social_media"


class Action(str, enum.Enum):
    """Actions that can be performed on a resource."""

    CREATE = "create"
    UPDATE = "update"
    VIEW = "view"
    DELETE = "delete"
    APPROVE = "approve"
    UPLOAD = "upload"


class GrantChange(str, enum.Enum):
    """Entries recorded in a permission assignment's grant history."""

    GRANTED = "granted"
    REVOKED = "revoked"


def permission_identifier(resource: Resource, action: Action) -> str:
    """Build the ``resource:action`` identifier stored in assignments."""
    return f"{Resource(resource).value}{PERMISSION_SEPARATOR}{Action(action).value}"


def parse_permission_identifier(identifier: str) -> tuple:
    """
    Split a permission identifier into its resource and action.

    Raises:
        ValueError: If the identifier is malformed or names an unknown
            resource or action
    """
    resource, sep, action = identifier.partition(PERMISSION_SEPARATOR)
    if not sep:
        raise ValueError(f"Permission identifier must look like 'resource:action': {identifier}")
    return Resource(resource), Action(action)


def permission_catalog() -> FrozenSet[str]:
    """Every valid permission identifier (resource x action)."""
    return frozenset(permission_identifier(r, a) for r in Resource for a in Action)
