"""
Operation context for handling cross-cutting concerns.

Service methods decorated with ``@operation()`` get ENTER/EXIT log records
with a duration, a correlation id shared with any nested operation, and
BaseError instances enriched with the operation that raised them.
"""

import time
import uuid
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Optional, TypeVar, Union, cast

from ..config import get_config
from ..exceptions import BaseError, get_correlation_id, set_correlation_id
from ..utils.logger import ContextAwareLogger, get_logger
from .workspace_context import WorkspaceContext


class OperationContext:
    """Context for a specific operation."""

    def __init__(self, operation_name: str, correlation_id: Optional[str] = None, **context):
        self.operation_name = operation_name
        self.operation_id = str(uuid.uuid4())
        self.correlation_id = correlation_id or get_correlation_id() or str(uuid.uuid4())

        # Child operations on this thread share the correlation id
        set_correlation_id(self.correlation_id)

        self.context = context
        self.context["operation_id"] = self.operation_id
        self.context["correlation_id"] = self.correlation_id
        self.start_time = time.time()

    @property
    def duration_ms(self) -> float:
        return (time.time() - self.start_time) * 1000


class OperationHandler:
    """Handles operation logging and error enrichment."""

    def __init__(self, logger: Optional[ContextAwareLogger] = None):
        self.logger = logger if logger is not None else get_logger()

    @contextmanager
    def operation(self, name: str, **context):
        workspace_id = WorkspaceContext.get_current_workspace_id()
        if workspace_id and "workspace_id" not in context:
            context["workspace_id"] = workspace_id

        op_ctx = OperationContext(name, **context)
        ids = {"operation_id": op_ctx.operation_id, "correlation_id": op_ctx.correlation_id}

        self.logger.info(f"ENTER: {name}", extra={**context, **ids})

        try:
            yield op_ctx
        except BaseError as e:
            e.add_context(
                operation_name=name,
                operation_id=op_ctx.operation_id,
                operation_duration_ms=op_ctx.duration_ms,
            )
            # BaseError already logged itself; this record ties it to the operation
            self.logger.warning(
                f"ERROR: {name} -> {e.error_code.value}: {e.message}",
                extra={
                    **context,
                    **ids,
                    "duration_ms": op_ctx.duration_ms,
                    "error_id": e.error_id,
                    "error_code": e.error_code.value,
                    "status": "error",
                },
            )
            raise
        except Exception as e:
            self.logger.exception(
                f"ERROR: {name} -> {type(e).__name__}: {str(e)}",
                extra={
                    **context,
                    **ids,
                    "duration_ms": op_ctx.duration_ms,
                    "error_type": type(e).__name__,
                    "status": "error",
                },
            )
            raise
        else:
            self.logger.info(
                f"EXIT: {name}",
                extra={**context, **ids, "duration_ms": op_ctx.duration_ms, "status": "success"},
            )


F = TypeVar("F", bound=Callable[..., Any])


def operation(name: Union[Optional[str], Callable] = None):
    """
    Decorator for service operations.

    Args:
        name: Optional operation name. Defaults to ``<module>.<Class>.<method>``.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            if not get_config().features.enable_operation_context:
                return func(*args, **kwargs)

            if name is not None:
                op_name = name
            else:
                op_name = func.__qualname__
                op_name = f"{func.__module__.split('.')[-1]}.{op_name}"

            handler = OperationHandler()
            with handler.operation(op_name, source_module=func.__module__):
                return func(*args, **kwargs)

        return cast(F, wrapper)

    # Used without parentheses
    if callable(name):
        func, name = name, None
        return decorator(func)

    return decorator
