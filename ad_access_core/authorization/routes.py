"""
Route declarations for the permission authorizer.

Every guarded route is registered up front with the permission it needs and
the place its workspace id comes from. Nothing is inferred from the URL at
request time unless the route asked for it.
"""

from enum import Enum
from typing import Any, Dict, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..constants import HeaderName
from ..enums import Action, Resource, permission_identifier


class WorkspaceSource(str, Enum):
    """Where a route's workspace id is read from."""

    PATH = "path"
    QUERY = "query"
    BODY = "body"
    HEADER = "header"
    PATH_SEGMENT = "path_segment"
    ANY = "any"


# Precedence used by routes declared with WorkspaceSource.ANY
ANY_SOURCE_ORDER = (
    WorkspaceSource.PATH,
    WorkspaceSource.QUERY,
    WorkspaceSource.BODY,
    WorkspaceSource.HEADER,
)


class RoutePermission(BaseModel):
    """Permission requirement and workspace source of one route."""

    model_config = ConfigDict(frozen=True)

    resource: Resource
    action: Action
    workspace_source: WorkspaceSource = WorkspaceSource.ANY
    param_name: str = "workspace_id"
    path_segment: Optional[str] = None
    allow_bootstrap: bool = False

    @model_validator(mode="after")
    def check_path_segment(self) -> "RoutePermission":
        if self.workspace_source == WorkspaceSource.PATH_SEGMENT and not self.path_segment:
            raise ValueError("path_segment is required for WorkspaceSource.PATH_SEGMENT")
        return self

    @property
    def permission_id(self) -> str:
        return permission_identifier(self.resource, self.action)


class InboundRequest(BaseModel):
    """Transport-neutral view of an inbound operation."""

    route: Optional[str] = None
    path: str = ""
    path_params: Dict[str, str] = Field(default_factory=dict)
    query_params: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None
    headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("headers")
    @classmethod
    def lowercase_header_names(cls, v: Dict[str, str]) -> Dict[str, str]:
        return {k.lower(): val for k, val in v.items()}

    def workspace_from(self, source: WorkspaceSource, route: RoutePermission) -> Optional[str]:
        """Read the workspace id from one source, or None if absent or blank."""
        if source == WorkspaceSource.PATH:
            value = self.path_params.get(route.param_name)
        elif source == WorkspaceSource.QUERY:
            value = self.query_params.get(route.param_name)
        elif source == WorkspaceSource.BODY:
            value = self.body.get(route.param_name) if isinstance(self.body, dict) else None
        elif source == WorkspaceSource.HEADER:
            value = self.headers.get(HeaderName.WORKSPACE_ID.value)
        elif source == WorkspaceSource.PATH_SEGMENT:
            value = self._segment_after(route.path_segment)
        else:
            for ordered in ANY_SOURCE_ORDER:
                value = self.workspace_from(ordered, route)
                if value:
                    return value
            return None

        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def _segment_after(self, segment: Optional[str]) -> Optional[str]:
        parts = [p for p in self.path.split("/") if p]
        for index, part in enumerate(parts[:-1]):
            if part == segment:
                return parts[index + 1]
        return None


class RouteRegistry:
    """
    Route name -> RoutePermission map, built at startup.

    Usage:
        routes = (
            RouteRegistry()
            .route("campaigns.create", Resource.CAMPAIGN, Action.CREATE,
                   source=WorkspaceSource.PATH)
            .route("workspaces.create", Resource.WORKSPACE, Action.CREATE,
                   source=WorkspaceSource.BODY, allow_bootstrap=True)
        )
    """

    def __init__(self):
        self._routes: Dict[str, RoutePermission] = {}

    def register(self, route_name: str, permission: RoutePermission) -> "RouteRegistry":
        if route_name in self._routes:
            raise ValueError(f"Route already registered: {route_name}")
        self._routes[route_name] = permission
        return self

    def route(
        self,
        route_name: str,
        resource: Resource,
        action: Action,
        source: WorkspaceSource = WorkspaceSource.ANY,
        param: str = "workspace_id",
        segment: Optional[str] = None,
        allow_bootstrap: bool = False,
    ) -> "RouteRegistry":
        return self.register(
            route_name,
            RoutePermission(
                resource=resource,
                action=action,
                workspace_source=source,
                param_name=param,
                path_segment=segment,
                allow_bootstrap=allow_bootstrap,
            ),
        )

    def get(self, route_name: Optional[str]) -> Optional[RoutePermission]:
        if route_name is None:
            return None
        return self._routes.get(route_name)

    def __contains__(self, route_name: str) -> bool:
        return route_name in self._routes

    def __iter__(self) -> Iterator[str]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)
