"""
Deny-by-default authorization of inbound operations.

Each request moves through UNAUTHENTICATED -> IDENTITY_RESOLVED ->
WORKSPACE_RESOLVED -> DECIDED. Any step that cannot complete ends the request
with the precise error; ``public_error`` decides what the caller gets to see.
"""

from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..config import AppConfig, get_config
from ..context.workspace_context import workspace_context
from ..exceptions import (
    AuthenticationRequiredError,
    BaseError,
    ErrorCode,
    PermissionDeniedError,
    WorkspaceContextMissingError,
    permission_denied,
)
from ..services.permission_store import PermissionStore
from ..utils.logger import get_logger
from .routes import InboundRequest, RoutePermission, RouteRegistry


class Identity(BaseModel):
    """Authenticated caller."""

    id: str
    created_by: Optional[str] = None

    @property
    def is_self_provisioned(self) -> bool:
        return self.created_by is not None and self.id == self.created_by


IdentityResolver = Callable[[InboundRequest], Optional[Identity]]


class AuthorizationStage(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    IDENTITY_RESOLVED = "identity_resolved"
    WORKSPACE_RESOLVED = "workspace_resolved"
    DECIDED = "decided"


class AuthorizationDecision(BaseModel):
    """Outcome of an allowed request."""

    route: str
    stage: AuthorizationStage = AuthorizationStage.DECIDED
    allowed: bool
    identity: Identity
    workspace_id: Optional[str] = None
    permission_id: str
    bootstrap: bool = False


class PermissionAuthorizer:
    """
    Gates registered routes on the caller's workspace permissions.

    Args:
        routes: Registered route declarations
        resolve_user: Maps a request to its identity; None means unauthenticated
        session_provider: Returns the session used for permission reads
            (defaults to the thread's scoped session)
        config: Application config (defaults to the global one)
    """

    def __init__(
        self,
        routes: RouteRegistry,
        resolve_user: IdentityResolver,
        session_provider: Optional[Callable[[], Session]] = None,
        config: Optional[AppConfig] = None,
    ):
        self.routes = routes
        self.resolve_user = resolve_user
        self.session_provider = session_provider
        self.config = config or get_config()
        self.logger = get_logger()

    def _store(self) -> PermissionStore:
        if self.session_provider is not None:
            return PermissionStore(self.session_provider(), config=self.config)
        from ..db.db_config import get_db_manager

        return PermissionStore(get_db_manager().get_session(), config=self.config)

    def _identify(self, request: InboundRequest) -> Identity:
        try:
            identity = self.resolve_user(request)
        except AuthenticationRequiredError:
            raise
        except Exception as e:
            raise AuthenticationRequiredError(
                "Could not resolve the caller's identity", cause=e, route=request.route
            ) from e
        if identity is None:
            raise AuthenticationRequiredError(route=request.route)
        return identity

    def authorize(self, request: InboundRequest) -> AuthorizationDecision:
        """
        Decide whether the request may run.

        Returns:
            The allow decision

        Raises:
            AuthenticationRequiredError: No identity could be resolved
            WorkspaceContextMissingError: The route needs a workspace and none was given
            PermissionDeniedError: Unregistered route, or the permission is not held
        """
        identity = self._identify(request)

        route: Optional[RoutePermission] = self.routes.get(request.route)
        if route is None:
            raise PermissionDeniedError(
                "Route has no registered permission",
                route=request.route,
                user_id=identity.id,
                stage=AuthorizationStage.IDENTITY_RESOLVED.value,
            )

        workspace_id = request.workspace_from(route.workspace_source, route)
        if workspace_id is None:
            if route.allow_bootstrap and identity.is_self_provisioned:
                self.logger.info(
                    "Bootstrap request allowed without workspace",
                    extra={"route": request.route, "user_id": identity.id},
                )
                return AuthorizationDecision(
                    route=request.route,
                    allowed=True,
                    identity=identity,
                    permission_id=route.permission_id,
                    bootstrap=True,
                )
            raise WorkspaceContextMissingError(
                route=request.route,
                user_id=identity.id,
                workspace_source=route.workspace_source.value,
                stage=AuthorizationStage.IDENTITY_RESOLVED.value,
            )

        if route.permission_id not in self._store().get(identity.id, workspace_id):
            raise permission_denied(
                route.action.value,
                route.resource.value,
                workspace_id,
                route=request.route,
                user_id=identity.id,
                stage=AuthorizationStage.WORKSPACE_RESOLVED.value,
            )

        return AuthorizationDecision(
            route=request.route,
            allowed=True,
            identity=identity,
            workspace_id=workspace_id,
            permission_id=route.permission_id,
        )

    def guard(self, route_name: str) -> Callable:
        """
        Decorator that authorizes before running a handler.

        The handler takes the InboundRequest first and receives the decision
        as the ``authorization`` keyword. It runs inside the resolved
        workspace's context.
        """

        def decorator(func: Callable) -> Callable:
            @wraps(func)
            def wrapper(request: InboundRequest, *args: Any, **kwargs: Any) -> Any:
                routed = request.model_copy(update={"route": route_name})
                decision = self.authorize(routed)
                with workspace_context(decision.workspace_id):
                    return func(routed, *args, authorization=decision, **kwargs)

            return wrapper

        return decorator


_UNIFIED_DENIAL = {
    "error": {
        "code": ErrorCode.PERMISSION_DENIED.value,
        "type": PermissionDeniedError.__name__,
        "message": "Permission denied",
    }
}


def public_error(exc: Exception, config: Optional[AppConfig] = None) -> Tuple[int, Dict[str, Any]]:
    """
    Status code and body to return to the caller for an error.

    With ``permissions.unify_denials`` set, a missing workspace and a missing
    permission look the same, so callers cannot discover which workspaces exist.
    """
    config = config or get_config()
    if config.permissions.unify_denials and isinstance(
        exc, (WorkspaceContextMissingError, PermissionDeniedError)
    ):
        return 403, {"error": dict(_UNIFIED_DENIAL["error"])}
    if isinstance(exc, BaseError):
        return exc.status_code, exc.to_dict(include_cause=config.debug)
    return 500, {
        "error": {
            "code": ErrorCode.INTERNAL_ERROR.value,
            "type": "InternalError",
            "message": "Internal server error",
        }
    }
