"""
Exception system with error codes, context, and correlation support.

Every error raised by the credential, delegation and permission layers
derives from BaseError so callers get a stable error code, an HTTP-ish status
and a context dictionary that is safe to log.
"""

import threading
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

_thread_local = threading.local()


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # System errors (1xxx)
    INTERNAL_ERROR = "1000"
    DATABASE_ERROR = "1001"
    CONNECTION_ERROR = "1002"
    CONFIGURATION_ERROR = "1003"
    TIMEOUT_ERROR = "1004"

    # Validation errors (2xxx)
    VALIDATION_FAILED = "2000"
    INVALID_FORMAT = "2001"
    MISSING_REQUIRED = "2002"

    # Resource errors (3xxx)
    NOT_FOUND = "3000"
    DUPLICATE = "3001"
    CONFLICT = "3002"
    EXPIRED = "3004"
    REVOKED = "3006"

    # Access errors (4xxx)
    AUTHENTICATION_REQUIRED = "4000"
    PERMISSION_DENIED = "4003"
    PRECONDITION_FAILED = "4004"

    # External service errors (5xxx)
    EXTERNAL_API_ERROR = "5002"
    RATE_LIMITED = "5003"
    UNSUPPORTED_PLATFORM = "5005"


class BaseError(Exception):
    """Base exception with context, error codes, logging, and error chaining."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        cause: Optional[Exception] = None,
        **context: Any,
    ):
        """
        Initialize base error with rich context.

        Args:
            message: Human-readable error message
            error_code: Standardized error code from ErrorCode enum
            status_code: HTTP status code for API responses
            cause: Original exception that caused this error
            **context: Additional context information
        """
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.error_id = str(uuid.uuid4())
        self.context = context

        correlation_id = get_correlation_id()
        if correlation_id:
            self.context["correlation_id"] = correlation_id

        self.context["error_id"] = self.error_id

        if cause:
            self.context["cause"] = {
                "type": type(cause).__name__,
                "message": str(cause),
                "traceback": traceback.format_exception(type(cause), cause, cause.__traceback__),
            }

        self._log_error()
        super().__init__(message)

    def _log_error(self) -> None:
        """Log error with a level matching its status code."""
        # Lazy import: the logger reads config, which must not import exceptions first
        from .utils.logger import get_logger

        logger = get_logger()

        log_data = {
            "error_id": self.error_id,
            "error_code": self.error_code.value,
            "status_code": self.status_code,
            "error_message": self.message,
            "context": {k: v for k, v in self.context.items() if k not in ["cause", "traceback"]},
        }
        if "correlation_id" in self.context:
            log_data["correlation_id"] = self.context["correlation_id"]

        if self.status_code >= 500:
            logger.error(
                f"Error {self.error_code.value}: {self.message}",
                extra=log_data,
                exc_info=self.cause,
            )
        elif self.status_code >= 400:
            logger.warning(f"Client error {self.error_code.value}: {self.message}", extra=log_data)
        else:
            logger.info(f"Error {self.error_code.value}: {self.message}", extra=log_data)

    def to_dict(
        self, include_cause: bool = False, include_traceback: bool = False
    ) -> Dict[str, Any]:
        """
        Convert to dict for API responses.

        Args:
            include_cause: Include cause information (useful for debugging)
            include_traceback: Include full traceback (only in debug mode)

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        result: Dict[str, Any] = {
            "error": {
                "id": self.error_id,
                "code": self.error_code.value,
                "type": type(self).__name__,
                "message": self.message,
                "timestamp": self.timestamp,
                "context": {
                    k: v
                    for k, v in self.context.items()
                    if k not in ["cause", "error_id", "correlation_id"]
                },
            }
        }

        if "correlation_id" in self.context:
            result["error"]["correlation_id"] = self.context["correlation_id"]

        if include_cause and "cause" in self.context:
            result["error"]["cause"] = {
                "type": self.context["cause"]["type"],
                "message": self.context["cause"]["message"],
            }
            if include_traceback:
                result["error"]["cause"]["traceback"] = self.context["cause"]["traceback"]

        return result

    def add_context(self, **kwargs: Any) -> "BaseError":
        """Add additional context to the error and return it for chaining."""
        self.context.update(kwargs)
        return self

    @property
    def error_chain(self) -> List[Exception]:
        """Get the full chain of errors."""
        chain: List[Exception] = [self]
        current = self.cause
        while current:
            chain.append(current)
            current = getattr(current, "cause", None)
        return chain


# Layer-specific base exceptions
class RepositoryError(BaseError):
    """Persistence layer errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATABASE_ERROR,
        status_code: int = 500,
        cause: Optional[Exception] = None,
        **context,
    ):
        super().__init__(message, error_code, status_code, cause, **context)


class ServiceError(BaseError):
    """Service layer errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        operation: Optional[str] = None,
        cause: Optional[Exception] = None,
        status_code: int = 500,
        **context,
    ):
        if operation:
            context["operation"] = operation
        super().__init__(message, error_code, status_code, cause, **context)


class ValidationError(BaseError):
    """Validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        cause: Optional[Exception] = None,
        **context,
    ):
        if field:
            context["field"] = field
        super().__init__(message, error_code, 400, cause, **context)


# ==================== ACCESS EXCEPTIONS ====================


class AuthenticationRequiredError(BaseError):
    """Raised when the caller, or a principal's platform connection, is not authenticated."""

    def __init__(self, message: str = "Authentication required", **kwargs):
        kwargs.setdefault("error_code", ErrorCode.AUTHENTICATION_REQUIRED)
        kwargs.setdefault("status_code", 401)
        super().__init__(message=message, **kwargs)


class PermissionDeniedError(BaseError):
    """Raised when an identity lacks the permission required for an operation."""

    def __init__(self, message: str = "Permission denied", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.PERMISSION_DENIED, status_code=403, **kwargs
        )


class WorkspaceContextMissingError(BaseError):
    """Raised when no workspace can be resolved for a workspace-scoped operation."""

    def __init__(self, message: str = "Workspace context is required", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.MISSING_REQUIRED, status_code=400, **kwargs
        )


# ==================== CREDENTIAL EXCEPTIONS ====================


class CredentialNotFoundError(AuthenticationRequiredError):
    """Raised when a principal has never connected a credential."""

    def __init__(self, message: str = "Credential not found", **kwargs):
        super().__init__(message=message, error_code=ErrorCode.NOT_FOUND, status_code=404, **kwargs)


class CredentialExpiredError(BaseError):
    """Raised when a credential has expired and cannot be refreshed."""

    def __init__(self, message: str = "Credential has expired", **kwargs):
        super().__init__(message=message, error_code=ErrorCode.EXPIRED, status_code=401, **kwargs)


class CredentialRevokedError(BaseError):
    """Raised when a credential was revoked and must be re-issued."""

    def __init__(self, message: str = "Credential has been revoked", **kwargs):
        super().__init__(message=message, error_code=ErrorCode.REVOKED, status_code=401, **kwargs)


class DelegationNotVerifiedError(BaseError):
    """Raised when an agency's access to an account could not be verified."""

    def __init__(self, message: str = "Delegated access could not be verified", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.PRECONDITION_FAILED, status_code=403, **kwargs
        )


# ==================== PROVIDER EXCEPTIONS ====================


class UnsupportedPlatformError(BaseError):
    """Raised when no gateway implementation is registered for a platform."""

    def __init__(self, platform: str, message: Optional[str] = None, **kwargs):
        super().__init__(
            message=message or f"Platform not supported: {platform}",
            error_code=ErrorCode.UNSUPPORTED_PLATFORM,
            status_code=501,
            platform=platform,
            **kwargs,
        )


class ProviderError(BaseError):
    """
    Upstream platform failure.

    ``retryable`` tells the caller whether the same request may succeed later
    (timeouts, 5xx, connection resets). Non-retryable errors mean the
    provider gave a definitive answer.
    """

    def __init__(
        self,
        message: str,
        platform: str,
        retryable: bool = False,
        error_code: Optional[ErrorCode] = None,
        cause: Optional[Exception] = None,
        **context,
    ):
        self.retryable = retryable
        self.platform = platform
        if error_code is None:
            error_code = ErrorCode.EXTERNAL_API_ERROR
        status_code = 504 if error_code == ErrorCode.TIMEOUT_ERROR else 502
        super().__init__(
            message,
            error_code,
            status_code,
            cause,
            platform=platform,
            retryable=retryable,
            **context,
        )


class ProviderRejectedError(ProviderError):
    """The provider definitively refused a token operation (e.g. invalid_grant)."""

    def __init__(self, message: str, platform: str, **context):
        super().__init__(message, platform, retryable=False, **context)


# Factory functions for common error patterns
def not_found(
    resource_type: str, cause: Optional[Exception] = None, **identifiers
) -> RepositoryError:
    """
    Factory for not found errors.

    Args:
        resource_type: Type of resource (e.g., 'PlatformAccount', 'Agency')
        cause: Original exception if any
        **identifiers: Resource identifiers (e.g., account_id='123')

    Returns:
        Configured RepositoryError instance with 404 status
    """
    id_parts = [f"{k}={v}" for k, v in identifiers.items()]
    message = f"{resource_type} not found"
    if id_parts:
        message += f": {', '.join(id_parts)}"

    return RepositoryError(
        message,
        error_code=ErrorCode.NOT_FOUND,
        status_code=404,
        cause=cause,
        resource_type=resource_type,
        **identifiers,
    )


def validation_failed(
    field: str, value: Any, reason: str, cause: Optional[Exception] = None
) -> ValidationError:
    """Factory for validation errors on a single field."""
    return ValidationError(
        f"Validation failed for {field}: {reason}",
        field=field,
        error_code=ErrorCode.VALIDATION_FAILED,
        cause=cause,
        value=str(value),
        reason=reason,
    )


def permission_denied(
    action: str, resource: str, workspace_id: Optional[str] = None, **context
) -> PermissionDeniedError:
    """
    Factory for permission denied errors.

    Args:
        action: Action that was denied (e.g., 'create', 'update')
        resource: Resource being accessed
        workspace_id: Workspace the check ran against
        **context: Additional context

    Returns:
        Configured PermissionDeniedError instance
    """
    message = f"Insufficient permissions: {action} on {resource}"
    if workspace_id:
        message += f" in workspace {workspace_id}"
    return PermissionDeniedError(
        message,
        action=action,
        resource=resource,
        workspace_id=workspace_id,
        **context,
    )


# Correlation ID management
def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current thread."""
    _thread_local.correlation_id = correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the current thread's correlation ID."""
    return getattr(_thread_local, "correlation_id", None)


def clear_correlation_id() -> None:
    """Clear the current thread's correlation ID."""
    if hasattr(_thread_local, "correlation_id"):
        delattr(_thread_local, "correlation_id")
