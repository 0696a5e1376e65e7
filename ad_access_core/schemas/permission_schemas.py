"""
Pydantic schemas for workspace permission assignments.

Identifiers are validated against the resource x action catalog on the way
in, so the store never holds a permission nobody can check.
"""

from datetime import datetime
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..enums import GrantChange, parse_permission_identifier


def validate_permission_id(value: str) -> str:
    """Normalize and check one permission identifier."""
    value = value.strip().lower()
    try:
        parse_permission_identifier(value)
    except ValueError as e:
        raise ValueError(f"Unknown permission identifier: {value}") from e
    return value


class GrantHistoryEntry(BaseModel):
    permission_id: str
    change: GrantChange
    by: Optional[str] = None
    at: datetime


class PermissionAssignmentRead(BaseModel):
    """Permissions one user holds in one workspace."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    workspace_id: str
    permission_ids: FrozenSet[str] = Field(default_factory=frozenset)
    grant_history: List[GrantHistoryEntry] = Field(default_factory=list)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def has(self, permission_id: str) -> bool:
        return permission_id in self.permission_ids


class BulkAssignmentItem(BaseModel):
    """One user's grants inside a bulk assignment."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)
    permission_ids: List[str] = Field(..., min_length=1)

    @field_validator("permission_ids")
    @classmethod
    def validate_permission_ids(cls, v: List[str]) -> List[str]:
        return [validate_permission_id(p) for p in v]


class BulkAssignmentOutcome(BaseModel):
    user_id: str
    succeeded: bool
    permission_ids: FrozenSet[str] = Field(default_factory=frozenset)
    error: Optional[str] = None
    error_code: Optional[str] = None


class BulkAssignmentResult(BaseModel):
    """Per-user outcome of a bulk assignment; users are independent."""

    workspace_id: str
    outcomes: List[BulkAssignmentOutcome] = Field(default_factory=list)

    @property
    def succeeded(self) -> List[str]:
        return [o.user_id for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> List[str]:
        return [o.user_id for o in self.outcomes if not o.succeeded]

    def outcome_for(self, user_id: str) -> Optional[BulkAssignmentOutcome]:
        return next((o for o in self.outcomes if o.user_id == user_id), None)
