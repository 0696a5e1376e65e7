"""
Workspace permission checks and administration.

Checks are pure lookups in the user's stored set. Administrative changes
require the acting user to hold the configured administration identifier in
the same workspace; there is no global bypass.
"""

from typing import Dict, FrozenSet, Iterable, Optional, Union

from sqlalchemy.orm import Session

from ..config import AppConfig, get_config
from ..context.operation_context import operation
from ..enums import (
    Action,
    Resource,
    parse_permission_identifier,
    permission_catalog,
    permission_identifier,
)
from ..exceptions import permission_denied
from ..schemas.permission_schemas import (
    BulkAssignmentItem,
    BulkAssignmentResult,
    PermissionAssignmentRead,
)
from ..utils.logger import get_logger
from .permission_store import PermissionStore


class PermissionService:
    """Permission queries and guarded grants for one session."""

    def __init__(
        self,
        session: Session,
        store: Optional[PermissionStore] = None,
        config: Optional[AppConfig] = None,
    ):
        self.session = session
        self.config = config or get_config()
        self.store = store or PermissionStore(session, config=self.config)
        self.logger = get_logger()

    # ==================== Checks ====================

    def user_has_permission(
        self, user_id: str, workspace_id: str, resource: Resource, action: Action
    ) -> bool:
        """True iff ``resource:action`` is in the user's set for the workspace."""
        return permission_identifier(resource, action) in self.store.get(user_id, workspace_id)

    def user_has_workspace_access(self, user_id: str, workspace_id: str) -> bool:
        """True if the user holds any permission in the workspace."""
        return bool(self.store.get(user_id, workspace_id))

    def get_user_permissions(self, user_id: str, workspace_id: str) -> FrozenSet[str]:
        return self.store.get(user_id, workspace_id)

    def _require_admin(self, acting_user_id: str, workspace_id: str) -> None:
        admin_identifier = self.config.permissions.admin_identifier
        if admin_identifier in self.store.get(acting_user_id, workspace_id):
            return
        resource, action = parse_permission_identifier(admin_identifier)
        raise permission_denied(
            action.value, resource.value, workspace_id, user_id=acting_user_id
        )

    # ==================== Administration ====================

    @operation()
    def assign_permission(
        self, user_id: str, workspace_id: str, permission_id: str, acting_user_id: str
    ) -> PermissionAssignmentRead:
        """
        Grant one permission on behalf of an administrator of the workspace.

        Raises:
            PermissionDeniedError: The acting user may not manage permissions here
            ValidationError: Unknown permission identifier
        """
        self._require_admin(acting_user_id, workspace_id)
        return self.store.assign(user_id, workspace_id, permission_id, granted_by=acting_user_id)

    @operation()
    def revoke_permission(
        self, user_id: str, workspace_id: str, permission_id: str, acting_user_id: str
    ) -> Optional[PermissionAssignmentRead]:
        """Remove one permission; returns None once the user has none left."""
        self._require_admin(acting_user_id, workspace_id)
        return self.store.remove(user_id, workspace_id, permission_id, revoked_by=acting_user_id)

    @operation()
    def remove_user_from_workspace(
        self, user_id: str, workspace_id: str, acting_user_id: str
    ) -> bool:
        self._require_admin(acting_user_id, workspace_id)
        return self.store.remove_all(user_id, workspace_id, revoked_by=acting_user_id)

    @operation()
    def bulk_assign_permissions(
        self,
        workspace_id: str,
        items: Iterable[Union[BulkAssignmentItem, Dict]],
        acting_user_id: str,
    ) -> BulkAssignmentResult:
        self._require_admin(acting_user_id, workspace_id)
        return self.store.bulk_assign(workspace_id, list(items), granted_by=acting_user_id)

    @operation()
    def bootstrap_workspace_owner(
        self, user_id: str, workspace_id: str
    ) -> Optional[PermissionAssignmentRead]:
        """
        Give the creator of a brand-new workspace every permission.

        Does nothing (returns None) once the workspace has an owner or any
        assignment, so it cannot be used to escalate inside an existing
        workspace, even by two creators racing for the same id.
        """
        assignment = self.store.claim_workspace(user_id, workspace_id, permission_catalog())
        if assignment is None:
            self.logger.warning(
                "Workspace already has an owner or members, bootstrap skipped",
                extra={"workspace_id": workspace_id, "user_id": user_id},
            )
            return None

        self.logger.info(
            "Workspace owner bootstrapped",
            extra={"workspace_id": workspace_id, "user_id": user_id},
        )
        return assignment
