"""
Tests for route registration and the PermissionAuthorizer.

Workspace ids come only from the source a route declares; unregistered routes
and missing permissions are denied.
"""

import pytest

from ad_access_core.authorization import (
    Identity,
    InboundRequest,
    PermissionAuthorizer,
    RoutePermission,
    RouteRegistry,
    WorkspaceSource,
    public_error,
)
from ad_access_core.context.workspace_context import WorkspaceContext
from ad_access_core.enums import Action, Resource
from ad_access_core.exceptions import (
    AuthenticationRequiredError,
    PermissionDeniedError,
    WorkspaceContextMissingError,
)
from tests.fixtures.factories import PermissionAssignmentFactory

WORKSPACE = "workspace-main"


def _identity_from_header(request: InboundRequest):
    user_id = request.headers.get("x-user-id")
    if not user_id:
        return None
    return Identity(id=user_id, created_by=request.headers.get("x-created-by"))


@pytest.fixture
def routes():
    return (
        RouteRegistry()
        .route("campaigns.create", Resource.CAMPAIGN, Action.CREATE, source=WorkspaceSource.PATH)
        .route("campaigns.list", Resource.CAMPAIGN, Action.VIEW, source=WorkspaceSource.QUERY)
        .route("designer.upload", Resource.DESIGNER, Action.UPLOAD, source=WorkspaceSource.BODY)
        .route("publisher.view", Resource.PUBLISHER, Action.VIEW, source=WorkspaceSource.HEADER)
        .route("campaigns.any", Resource.CAMPAIGN, Action.VIEW)
        .route(
            "legacy.assets",
            Resource.CAMPAIGN,
            Action.VIEW,
            source=WorkspaceSource.PATH_SEGMENT,
            segment="workspaces",
        )
        .route(
            "workspaces.create",
            Resource.WORKSPACE,
            Action.CREATE,
            source=WorkspaceSource.BODY,
            allow_bootstrap=True,
        )
    )


@pytest.fixture
def authorizer(db_session, routes, app_config):
    return PermissionAuthorizer(
        routes, _identity_from_header, session_provider=lambda: db_session, config=app_config
    )


@pytest.fixture
def member(db_session):
    return PermissionAssignmentFactory(
        user_id="member",
        workspace_id=WORKSPACE,
        permission_ids=["campaign:create", "campaign:view", "designer:upload", "publisher:view"],
    )


def _request(route, **kwargs):
    headers = kwargs.pop("headers", {})
    headers.setdefault("X-User-Id", "member")
    return InboundRequest(route=route, headers=headers, **kwargs)


class TestRouteRegistry:
    """Test route declarations."""

    def test_duplicate_route_rejected(self, routes):
        with pytest.raises(ValueError):
            routes.route("campaigns.create", Resource.CAMPAIGN, Action.CREATE)

    def test_path_segment_requires_segment_name(self):
        with pytest.raises(ValueError):
            RoutePermission(
                resource=Resource.CAMPAIGN,
                action=Action.VIEW,
                workspace_source=WorkspaceSource.PATH_SEGMENT,
            )

    def test_permission_id(self, routes):
        assert routes.get("campaigns.create").permission_id == "campaign:create"
        assert "campaigns.create" in routes
        assert len(routes) == 7


class TestIdentity:
    """Test the UNAUTHENTICATED stage."""

    def test_missing_identity(self, authorizer):
        request = InboundRequest(route="campaigns.create", path_params={"workspace_id": WORKSPACE})

        with pytest.raises(AuthenticationRequiredError):
            authorizer.authorize(request)

    def test_resolver_failure_becomes_authentication_required(self, db_session, routes):
        def broken(request):
            raise RuntimeError("token decode failed")

        authorizer = PermissionAuthorizer(routes, broken, session_provider=lambda: db_session)

        with pytest.raises(AuthenticationRequiredError) as exc_info:
            authorizer.authorize(_request("campaigns.create"))

        assert isinstance(exc_info.value.cause, RuntimeError)


class TestWorkspaceResolution:
    """Test each declared workspace source."""

    def test_path(self, authorizer, member):
        decision = authorizer.authorize(
            _request("campaigns.create", path_params={"workspace_id": WORKSPACE})
        )

        assert decision.allowed is True
        assert decision.workspace_id == WORKSPACE
        assert decision.permission_id == "campaign:create"

    def test_query(self, authorizer, member):
        decision = authorizer.authorize(
            _request("campaigns.list", query_params={"workspace_id": WORKSPACE})
        )

        assert decision.workspace_id == WORKSPACE

    def test_body(self, authorizer, member):
        decision = authorizer.authorize(
            _request("designer.upload", body={"workspace_id": WORKSPACE, "file": "a.png"})
        )

        assert decision.workspace_id == WORKSPACE

    def test_header(self, authorizer, member):
        decision = authorizer.authorize(
            _request("publisher.view", headers={"X-Workspace-Id": WORKSPACE})
        )

        assert decision.workspace_id == WORKSPACE

    def test_declared_source_only(self, authorizer, member):
        # Route reads the path; a query parameter is ignored
        with pytest.raises(WorkspaceContextMissingError):
            authorizer.authorize(
                _request("campaigns.create", query_params={"workspace_id": WORKSPACE})
            )

    def test_any_source_precedence(self, authorizer, member):
        decision = authorizer.authorize(
            _request(
                "campaigns.any",
                path_params={"workspace_id": WORKSPACE},
                query_params={"workspace_id": "workspace-query"},
                body={"workspace_id": "workspace-body"},
                headers={"X-Workspace-Id": "workspace-header"},
            )
        )

        assert decision.workspace_id == WORKSPACE

    def test_any_source_falls_back_to_header(self, authorizer, member):
        decision = authorizer.authorize(
            _request("campaigns.any", headers={"X-Workspace-Id": WORKSPACE})
        )

        assert decision.workspace_id == WORKSPACE

    def test_any_source_skips_blank_values(self, authorizer, member):
        decision = authorizer.authorize(
            _request(
                "campaigns.any",
                path_params={"workspace_id": "  "},
                query_params={"workspace_id": WORKSPACE},
            )
        )

        assert decision.workspace_id == WORKSPACE

    def test_path_segment_declared(self, authorizer, member):
        decision = authorizer.authorize(
            _request("legacy.assets", path=f"/api/workspaces/{WORKSPACE}/assets")
        )

        assert decision.workspace_id == WORKSPACE

    def test_path_segment_never_implicit(self, authorizer, member):
        with pytest.raises(WorkspaceContextMissingError):
            authorizer.authorize(
                _request("campaigns.any", path=f"/api/workspaces/{WORKSPACE}/campaigns")
            )


class TestDecision:
    """Test the membership check and bootstrap exception."""

    def test_missing_permission(self, authorizer, db_session):
        PermissionAssignmentFactory(
            user_id="viewer", workspace_id=WORKSPACE, permission_ids=["campaign:view"]
        )
        request = _request(
            "campaigns.create",
            path_params={"workspace_id": WORKSPACE},
            headers={"X-User-Id": "viewer"},
        )

        with pytest.raises(PermissionDeniedError) as exc_info:
            authorizer.authorize(request)

        assert exc_info.value.message == (
            f"Insufficient permissions: create on campaign in workspace {WORKSPACE}"
        )

    def test_no_assignment_row(self, authorizer):
        with pytest.raises(PermissionDeniedError):
            authorizer.authorize(
                _request("campaigns.create", path_params={"workspace_id": WORKSPACE})
            )

    def test_unregistered_route_denied(self, authorizer, member):
        with pytest.raises(PermissionDeniedError):
            authorizer.authorize(
                _request("campaigns.delete", path_params={"workspace_id": WORKSPACE})
            )

    def test_bootstrap_for_self_provisioned_user(self, authorizer):
        request = _request(
            "workspaces.create",
            body={"name": "New workspace"},
            headers={"X-User-Id": "creator", "X-Created-By": "creator"},
        )

        decision = authorizer.authorize(request)

        assert decision.allowed is True
        assert decision.bootstrap is True
        assert decision.workspace_id is None

    def test_bootstrap_requires_self_provisioned_user(self, authorizer):
        request = _request(
            "workspaces.create",
            body={"name": "New workspace"},
            headers={"X-User-Id": "invited", "X-Created-By": "admin"},
        )

        with pytest.raises(WorkspaceContextMissingError):
            authorizer.authorize(request)

    def test_bootstrap_route_with_workspace_still_checks_permission(self, authorizer):
        request = _request(
            "workspaces.create",
            body={"workspace_id": WORKSPACE},
            headers={"X-User-Id": "creator", "X-Created-By": "creator"},
        )

        with pytest.raises(PermissionDeniedError):
            authorizer.authorize(request)


class TestGuard:
    """Test the handler decorator."""

    def test_guarded_handler_runs_in_workspace_context(self, authorizer, member):
        seen = {}

        @authorizer.guard("campaigns.create")
        def create_campaign(request, name, authorization=None):
            seen["workspace"] = WorkspaceContext.get_current_workspace_id()
            seen["user"] = authorization.identity.id
            return name

        result = create_campaign(
            _request(None, path_params={"workspace_id": WORKSPACE}), "Spring sale"
        )

        assert result == "Spring sale"
        assert seen == {"workspace": WORKSPACE, "user": "member"}
        assert WorkspaceContext.get_current_workspace_id() is None

    def test_guarded_handler_not_called_when_denied(self, authorizer):
        calls = []

        @authorizer.guard("campaigns.create")
        def create_campaign(request, authorization=None):
            calls.append(request)

        with pytest.raises(PermissionDeniedError):
            create_campaign(_request(None, path_params={"workspace_id": WORKSPACE}))

        assert calls == []


class TestPublicError:
    """Test error shaping at the response boundary."""

    def test_denials_are_unified(self, app_config):
        app_config.permissions.unify_denials = True

        missing = public_error(WorkspaceContextMissingError(route="campaigns.create"))
        denied = public_error(PermissionDeniedError("Insufficient permissions: create on campaign"))

        assert missing == denied
        assert missing[0] == 403
        assert "workspace" not in missing[1]["error"]["message"].lower()

    def test_precise_errors_when_not_unified(self, app_config):
        app_config.permissions.unify_denials = False

        status, body = public_error(WorkspaceContextMissingError())

        assert status == 400
        assert body["error"]["type"] == "WorkspaceContextMissingError"

    def test_other_errors_pass_through(self, app_config):
        status, body = public_error(AuthenticationRequiredError())

        assert status == 401
        assert body["error"]["code"] == "4000"

    def test_unexpected_errors_are_generic(self, app_config):
        status, body = public_error(KeyError("secret detail"))

        assert status == 500
        assert "secret" not in body["error"]["message"]

    def test_debug_includes_cause(self, app_config):
        app_config.debug = True

        _, body = public_error(AuthenticationRequiredError(cause=RuntimeError("bad signature")))

        assert body["error"]["cause"] == {"type": "RuntimeError", "message": "bad signature"}
