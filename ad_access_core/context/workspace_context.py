"""
Workspace context management.

Once a request has been authorized, the workspace it runs in is kept in
thread-local storage so log records and downstream services can see it
without threading it through every call.
"""

import threading
from contextlib import contextmanager
from typing import Generator, Optional

from ..exceptions import ErrorCode, ValidationError
from ..utils.logger import get_logger


class WorkspaceContext:
    """Holds the workspace of the current request in thread-local storage."""

    _thread_local = threading.local()

    @classmethod
    def set_current_workspace(cls, workspace_id: str) -> None:
        """
        Set the current workspace ID for the execution context.

        Raises:
            ValidationError: If workspace_id is empty or not a string
        """
        if not workspace_id or not isinstance(workspace_id, str) or not workspace_id.strip():
            raise ValidationError(
                "workspace_id must be a non-empty string",
                error_code=ErrorCode.MISSING_REQUIRED,
                field="workspace_id",
                value=workspace_id,
            )

        cls._thread_local.workspace_id = workspace_id.strip()
        get_logger().debug(f"Current workspace set to: {workspace_id}")

    @classmethod
    def get_current_workspace_id(cls) -> Optional[str]:
        return getattr(cls._thread_local, "workspace_id", None)

    @classmethod
    def clear_current_workspace(cls) -> None:
        if hasattr(cls._thread_local, "workspace_id"):
            delattr(cls._thread_local, "workspace_id")


@contextmanager
def workspace_context(workspace_id: Optional[str]) -> Generator[None, None, None]:
    """
    Context manager that scopes the current thread to a workspace.

    A ``None`` workspace (bootstrap operations) leaves the context unset for
    the duration of the block. The previous workspace is restored afterward.
    """
    previous_workspace = WorkspaceContext.get_current_workspace_id()
    if workspace_id:
        WorkspaceContext.set_current_workspace(workspace_id)
    else:
        WorkspaceContext.clear_current_workspace()
    try:
        yield
    finally:
        if previous_workspace:
            WorkspaceContext.set_current_workspace(previous_workspace)
        else:
            WorkspaceContext.clear_current_workspace()
