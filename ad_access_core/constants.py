"""
Constants and enums for the ad access core.

This module centralizes the magic strings and constants used throughout
the package to keep naming consistent across services and tests.
"""

from enum import Enum


class QueueName(str, Enum):
    """Standard queue names used for log shipping."""

    LOGS = "logs-queue"


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    AZURE_STORAGE_CONNECTION = "AzureWebJobsStorage"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    DEBUG = "DEBUG"
    ENABLE_LOGS_QUEUE = "ENABLE_LOGS_QUEUE"
    META_APP_ID = "META_APP_ID"
    META_APP_SECRET = "META_APP_SECRET"
    META_REDIRECT_URI = "META_REDIRECT_URI"
    META_API_VERSION = "META_API_VERSION"
    PROVIDER_TIMEOUT_SECONDS = "PROVIDER_TIMEOUT_SECONDS"
    PERMISSION_BULK_MAX_WORKERS = "PERMISSION_BULK_MAX_WORKERS"
    PERMISSION_ADMIN_IDENTIFIER = "PERMISSION_ADMIN_IDENTIFIER"
    UNIFY_DENIALS = "UNIFY_DENIALS"
    ENCRYPTION_KEY = "TOKEN_ENCRYPTION_KEY"


class HeaderName(str, Enum):
    """Inbound request headers understood by the authorizer."""

    WORKSPACE_ID = "x-workspace-id"


class MetaGraph:
    """Meta Graph API endpoints and defaults."""

    GRAPH_BASE_URL = "https://graph.facebook.com"
    DIALOG_BASE_URL = "https://www.facebook.com"
    DEFAULT_API_VERSION = "v18.0"
    DEFAULT_LONG_LIVED_EXPIRES_IN = 5184000  # 60 days
    INVALID_TOKEN_ERROR_CODE = 190
    # Application, user, page and ads-account rate limits; sent as HTTP 400
    THROTTLING_ERROR_CODES = frozenset({4, 17, 32, 613})
    SCOPES = (
        "ads_management",
        "ads_read",
        "business_management",
        "pages_read_engagement",
        "pages_show_list",
        "pages_manage_ads",
    )


# Numeric constants
class Limits:
    """System limits and thresholds."""

    DEFAULT_BULK_MAX_WORKERS = 4
    MAX_BULK_MAX_WORKERS = 32
    MAX_BULK_ITEMS = 500
    STATE_TOKEN_BYTES = 24


# Time-related constants (in seconds)
class Timeouts:
    """Timeout values in seconds."""

    PROVIDER_REQUEST = 10
    REFRESH_WAIT = 60
