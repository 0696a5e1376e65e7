"""Utility modules for the ad access core."""

from .crud_helpers import get_record, get_record_by_id, list_records, require_record
from .encryption_utils import decrypt_token, decrypt_value, encrypt_token, encrypt_value
from .logger import (
    AzureQueueHandler,
    ContextAwareLogger,
    WorkspaceContextFilter,
    configure_logging,
    get_logger,
)
from .single_flight import SingleFlight

__all__ = [
    # Encryption utilities
    "encrypt_value",
    "decrypt_value",
    "encrypt_token",
    "decrypt_token",
    # Logging utilities
    "ContextAwareLogger",
    "AzureQueueHandler",
    "WorkspaceContextFilter",
    "configure_logging",
    "get_logger",
    # Generic CRUD helpers
    "get_record",
    "get_record_by_id",
    "require_record",
    "list_records",
    # Concurrency
    "SingleFlight",
]
