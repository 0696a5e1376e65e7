"""
Durable (user, workspace) -> permission set mapping.

Each pair has exactly one row. Grants and revocations rewrite that row's set
and append to its grant history; concurrent writers are detected through the
row version (or the unique constraint on first insert) and retried once.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..config import AppConfig, get_config
from ..constants import Limits
from ..context.operation_context import operation
from ..db.db_base import utc_now
from ..db.db_permission_models import PermissionAssignment, WorkspaceOwner
from ..enums import GrantChange
from ..exceptions import BaseError, ErrorCode, RepositoryError, validation_failed
from ..schemas.permission_schemas import (
    BulkAssignmentItem,
    BulkAssignmentOutcome,
    BulkAssignmentResult,
    PermissionAssignmentRead,
    validate_permission_id,
)
from ..utils.crud_helpers import list_records
from ..utils.logger import get_logger

SetChange = Callable[[Set[str]], Set[str]]


def _normalize(permission_ids: Iterable[str]) -> Set[str]:
    normalized = set()
    for permission_id in permission_ids:
        try:
            normalized.add(validate_permission_id(permission_id))
        except (ValueError, AttributeError) as e:
            raise validation_failed("permission_id", permission_id, str(e), cause=e) from e
    return normalized


def _history(granted: Iterable[str], revoked: Iterable[str], actor: Optional[str]) -> List[Dict]:
    now = utc_now().isoformat()
    return [
        {"permission_id": p, "change": GrantChange.GRANTED.value, "by": actor, "at": now}
        for p in sorted(granted)
    ] + [
        {"permission_id": p, "change": GrantChange.REVOKED.value, "by": actor, "at": now}
        for p in sorted(revoked)
    ]


class PermissionStore:
    """Reads and writes permission assignments."""

    def __init__(
        self,
        session: Session,
        session_factory: Optional[Callable[[], Session]] = None,
        config: Optional[AppConfig] = None,
    ):
        """
        Args:
            session: Session used for single-user reads and writes
            session_factory: Creates independent sessions for bulk writers;
                defaults to the global database manager
            config: Application config (defaults to the global one)
        """
        self.session = session
        self.session_factory = session_factory
        self.config = config or get_config()
        self.logger = get_logger()

    # ==================== Reads ====================

    def _row(self, user_id: str, workspace_id: str) -> Optional[PermissionAssignment]:
        # Bulk workers write through other sessions
        return (
            self.session.query(PermissionAssignment)
            .populate_existing()
            .filter(
                PermissionAssignment.user_id == user_id,
                PermissionAssignment.workspace_id == workspace_id,
            )
            .first()
        )

    def get(self, user_id: str, workspace_id: str) -> FrozenSet[str]:
        """Permission identifiers the user holds in the workspace (empty if none)."""
        row = self._row(user_id, workspace_id)
        return frozenset(row.permission_ids or ()) if row else frozenset()

    def get_assignment(self, user_id: str, workspace_id: str) -> Optional[PermissionAssignmentRead]:
        row = self._row(user_id, workspace_id)
        return PermissionAssignmentRead.model_validate(row) if row else None

    def list_user_workspaces(self, user_id: str) -> List[PermissionAssignmentRead]:
        rows = list_records(self.session, PermissionAssignment, {"user_id": user_id})
        return [PermissionAssignmentRead.model_validate(r) for r in rows]

    def list_workspace_users(self, workspace_id: str) -> List[PermissionAssignmentRead]:
        rows = list_records(self.session, PermissionAssignment, {"workspace_id": workspace_id})
        return [PermissionAssignmentRead.model_validate(r) for r in rows]

    def workspace_has_assignments(self, workspace_id: str) -> bool:
        return self.session.query(
            self.session.query(PermissionAssignment)
            .filter(PermissionAssignment.workspace_id == workspace_id)
            .exists()
        ).scalar()

    # ==================== Writes ====================

    def assign(
        self, user_id: str, workspace_id: str, permission_id: str, granted_by: Optional[str] = None
    ) -> PermissionAssignmentRead:
        """Add one identifier to the user's set; a no-op if already present."""
        return self.assign_many(user_id, workspace_id, [permission_id], granted_by)

    def assign_many(
        self,
        user_id: str,
        workspace_id: str,
        permission_ids: Iterable[str],
        granted_by: Optional[str] = None,
    ) -> PermissionAssignmentRead:
        """
        Add identifiers to the user's set, creating the row on first grant.

        Raises:
            ValidationError: An identifier is not in the permission catalog
            RepositoryError: The write kept conflicting or the database failed
        """
        additions = _normalize(permission_ids)
        return self._mutate(user_id, workspace_id, lambda current: current | additions, granted_by)

    def remove(
        self,
        user_id: str,
        workspace_id: str,
        permission_id: str,
        revoked_by: Optional[str] = None,
    ) -> Optional[PermissionAssignmentRead]:
        """
        Remove one identifier.

        Returns:
            The remaining assignment, or None if the set became empty and the
            row was deleted
        """
        removals = _normalize([permission_id])
        return self._mutate(user_id, workspace_id, lambda current: current - removals, revoked_by)

    def remove_all(self, user_id: str, workspace_id: str, revoked_by: Optional[str] = None) -> bool:
        """Delete the user's assignment row. Returns False if there was none."""
        existed = self._row(user_id, workspace_id) is not None
        self._mutate(user_id, workspace_id, lambda current: set(), revoked_by)
        return existed

    def claim_workspace(
        self, user_id: str, workspace_id: str, permission_ids: Iterable[str]
    ) -> Optional[PermissionAssignmentRead]:
        """
        Record the user as the workspace's owner and grant ``permission_ids``.

        The owner row and the assignment commit in one transaction. The owner
        row is keyed by workspace, so of two concurrent claims only one commits.

        Returns:
            The owner's assignment, or None if the workspace was already
            claimed or already has members
        """
        granted = sorted(_normalize(permission_ids))
        if self.workspace_has_assignments(workspace_id):
            return None

        try:
            self.session.add(WorkspaceOwner(workspace_id=workspace_id, owner_user_id=user_id))
            self.session.flush()
            row = PermissionAssignment(
                user_id=user_id,
                workspace_id=workspace_id,
                permission_ids=granted,
                grant_history=_history(granted, (), user_id),
                created_by=user_id,
                updated_by=user_id,
            )
            self.session.add(row)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            self.logger.info(
                "Workspace already claimed",
                extra={"workspace_id": workspace_id, "user_id": user_id},
            )
            return None
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryError(
                f"Failed to claim workspace: {str(e)}",
                cause=e,
                user_id=user_id,
                workspace_id=workspace_id,
            ) from e
        return PermissionAssignmentRead.model_validate(row)

    def _mutate(
        self, user_id: str, workspace_id: str, change: SetChange, actor: Optional[str]
    ) -> Optional[PermissionAssignmentRead]:
        for attempt in (1, 2):
            try:
                return self._apply(user_id, workspace_id, change, actor)
            except (IntegrityError, StaleDataError) as e:
                self.session.rollback()
                if attempt == 2:
                    raise RepositoryError(
                        "Permission assignment changed concurrently",
                        error_code=ErrorCode.CONFLICT,
                        status_code=409,
                        cause=e,
                        user_id=user_id,
                        workspace_id=workspace_id,
                    ) from e
                self.logger.warning(
                    "Permission assignment conflict, retrying",
                    extra={"user_id": user_id, "workspace_id": workspace_id},
                )
            except SQLAlchemyError as e:
                self.session.rollback()
                raise RepositoryError(
                    f"Failed to write permission assignment: {str(e)}",
                    cause=e,
                    user_id=user_id,
                    workspace_id=workspace_id,
                ) from e
        return None

    def _apply(
        self, user_id: str, workspace_id: str, change: SetChange, actor: Optional[str]
    ) -> Optional[PermissionAssignmentRead]:
        row = self._row(user_id, workspace_id)
        current = set(row.permission_ids or ()) if row else set()
        updated = change(set(current))

        if updated == current:
            return PermissionAssignmentRead.model_validate(row) if row else None

        history = _history(updated - current, current - updated, actor)

        if row is None:
            row = PermissionAssignment(
                user_id=user_id,
                workspace_id=workspace_id,
                permission_ids=sorted(updated),
                grant_history=history,
                created_by=actor,
                updated_by=actor,
            )
            self.session.add(row)
        elif not updated:
            self.session.delete(row)
            row = None
        else:
            row.permission_ids = sorted(updated)
            row.grant_history = list(row.grant_history or []) + history
            row.updated_by = actor

        self.session.commit()

        self.logger.info(
            "Permission assignment updated",
            extra={
                "user_id": user_id,
                "workspace_id": workspace_id,
                "granted": sorted(updated - current),
                "revoked": sorted(current - updated),
                "changed_by": actor,
            },
        )
        return PermissionAssignmentRead.model_validate(row) if row else None

    # ==================== Bulk ====================

    @operation()
    def bulk_assign(
        self,
        workspace_id: str,
        items: Sequence[Union[BulkAssignmentItem, Dict]],
        granted_by: Optional[str] = None,
    ) -> BulkAssignmentResult:
        """
        Grant permissions to many users of one workspace.

        Every user's upsert runs in its own session and transaction on a
        bounded worker pool, so one user's failure never touches another's
        row. Items for the same user are merged first; a user with any
        invalid item is reported failed and nothing is written for them.

        Returns:
            Per-user outcomes in first-seen order

        Raises:
            ValidationError: More than the allowed number of items
        """
        if len(items) > Limits.MAX_BULK_ITEMS:
            raise validation_failed(
                "items", len(items), f"at most {Limits.MAX_BULK_ITEMS} items per bulk assignment"
            )

        order: List[str] = []
        merged: Dict[str, Set[str]] = {}
        outcomes: Dict[str, BulkAssignmentOutcome] = {}
        for index, raw in enumerate(items):
            if isinstance(raw, dict):
                user_id = raw.get("user_id")
            else:
                user_id = getattr(raw, "user_id", None)
            user_id = str(user_id or "").strip() or f"<item {index}>"
            if user_id not in merged and user_id not in outcomes:
                order.append(user_id)

            try:
                item = BulkAssignmentItem.model_validate(raw)
            except PydanticValidationError as e:
                merged.pop(user_id, None)
                outcomes[user_id] = BulkAssignmentOutcome(
                    user_id=user_id,
                    succeeded=False,
                    error=str(e),
                    error_code=ErrorCode.VALIDATION_FAILED.value,
                )
                continue
            if item.user_id not in outcomes:
                merged.setdefault(item.user_id, set()).update(item.permission_ids)

        if merged:
            max_workers = min(self.config.permissions.bulk_max_workers, len(merged))
            with ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="permission-bulk"
            ) as pool:
                results = pool.map(
                    lambda entry: self._assign_isolated(
                        workspace_id, entry[0], entry[1], granted_by
                    ),
                    list(merged.items()),
                )
                for outcome in results:
                    outcomes[outcome.user_id] = outcome

        result = BulkAssignmentResult(
            workspace_id=workspace_id, outcomes=[outcomes[user_id] for user_id in order]
        )
        self.logger.info(
            "Bulk permission assignment finished",
            extra={
                "workspace_id": workspace_id,
                "succeeded": len(result.succeeded),
                "failed": len(result.failed),
            },
        )
        return result

    def _new_session(self) -> Session:
        if self.session_factory is not None:
            return self.session_factory()
        from ..db.db_config import get_db_manager

        return get_db_manager().new_session()

    def _assign_isolated(
        self, workspace_id: str, user_id: str, permission_ids: Set[str], granted_by: Optional[str]
    ) -> BulkAssignmentOutcome:
        session = None
        try:
            session = self._new_session()
            store = PermissionStore(session, config=self.config)
            assignment = store.assign_many(user_id, workspace_id, permission_ids, granted_by)
            return BulkAssignmentOutcome(
                user_id=user_id, succeeded=True, permission_ids=assignment.permission_ids
            )
        except BaseError as e:
            return BulkAssignmentOutcome(
                user_id=user_id,
                succeeded=False,
                error=e.message,
                error_code=e.error_code.value,
            )
        except SQLAlchemyError as e:
            return BulkAssignmentOutcome(
                user_id=user_id,
                succeeded=False,
                error=f"Database unavailable: {str(e)}",
                error_code=ErrorCode.DATABASE_ERROR.value,
            )
        finally:
            if session is not None:
                session.close()
