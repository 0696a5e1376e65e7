"""
Workspace permission models.

One row per (user, workspace) holding the set of granted permission
identifiers, plus the history of individual grants, and one owner row per
bootstrapped workspace.
"""

from sqlalchemy import Column, Integer, String, UniqueConstraint

from .db_base import JSON, TimestampMixin, UUIDMixin
from .db_config import Base


class PermissionAssignment(Base, UUIDMixin, TimestampMixin):
    """Set of ``resource:action`` identifiers a user holds in a workspace."""

    __tablename__ = "user_workspace_permissions"

    user_id = Column(String(36), nullable=False, index=True)
    workspace_id = Column(String(36), nullable=False, index=True)

    # Sorted list with set semantics
    permission_ids = Column(JSON, nullable=False, default=list)
    # [{permission_id, change, by, at}, ...]
    grant_history = Column(JSON, nullable=False, default=list)

    created_by = Column(String(36), nullable=True)
    updated_by = Column(String(36), nullable=True)

    version = Column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "workspace_id", name="uq_user_workspace"),)
    __mapper_args__ = {"version_id_col": version}


class WorkspaceOwner(Base, TimestampMixin):
    """
    The user who bootstrapped a workspace.

    Keyed by workspace so only one bootstrap per workspace can commit.
    """

    __tablename__ = "workspace_owners"

    workspace_id = Column(String(36), primary_key=True)
    owner_user_id = Column(String(36), nullable=False)
