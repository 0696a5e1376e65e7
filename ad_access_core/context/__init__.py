"""Context management for operations and workspace scoping."""

from .operation_context import OperationContext, operation
from .workspace_context import WorkspaceContext, workspace_context

__all__ = [
    "operation",
    "OperationContext",
    "WorkspaceContext",
    "workspace_context",
]
