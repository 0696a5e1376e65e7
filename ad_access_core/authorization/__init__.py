"""Route-level workspace permission checks."""

from .authorizer import (
    AuthorizationDecision,
    AuthorizationStage,
    Identity,
    IdentityResolver,
    PermissionAuthorizer,
    public_error,
)
from .routes import InboundRequest, RoutePermission, RouteRegistry, WorkspaceSource

__all__ = [
    "AuthorizationDecision",
    "AuthorizationStage",
    "Identity",
    "IdentityResolver",
    "InboundRequest",
    "PermissionAuthorizer",
    "RoutePermission",
    "RouteRegistry",
    "WorkspaceSource",
    "public_error",
]
