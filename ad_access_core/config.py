"""
Centralized configuration management for the ad access core.

This module provides a unified configuration system with support for:
- Environment variables
- Feature flags
- Provider (platform API) settings
- Validation using Pydantic
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import EnvironmentVariable, Limits, LogLevel, MetaGraph, QueueName, Timeouts


def _env_flag(name: EnvironmentVariable, default: str = "false") -> bool:
    return os.getenv(name.value, default).lower() == "true"


class QueueConfig(BaseModel):
    """Azure Storage Queue configuration for log shipping."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.AZURE_STORAGE_CONNECTION.value, ""),
        description="Azure Storage connection string",
    )
    logs_queue_name: str = Field(default=QueueName.LOGS.value, description="Logs queue name")
    batch_size: int = Field(default=10, ge=1, description="Log records per queue flush")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_LEVEL.value, LogLevel.INFO.value),
        description="Logging level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {level.value for level in LogLevel}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class FeatureFlags(BaseModel):
    """Feature flags for controlling runtime behavior."""

    enable_logs_queue: bool = Field(
        default_factory=lambda: _env_flag(EnvironmentVariable.ENABLE_LOGS_QUEUE),
        description="Ship log records to the Azure logs queue",
    )
    enable_operation_context: bool = Field(
        default=True, description="Log ENTER/EXIT records around service operations"
    )


class ProviderConfig(BaseModel):
    """Settings for the external advertising platform APIs."""

    meta_app_id: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.META_APP_ID.value, ""),
        description="Meta application (client) id",
    )
    meta_app_secret: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.META_APP_SECRET.value, ""),
        description="Meta application secret",
        repr=False,
    )
    meta_redirect_uri: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.META_REDIRECT_URI.value, ""),
        description="OAuth redirect URI registered with Meta",
    )
    meta_api_version: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.META_API_VERSION.value, MetaGraph.DEFAULT_API_VERSION
        ),
        description="Graph API version",
    )
    long_lived_expires_in: int = Field(
        default=MetaGraph.DEFAULT_LONG_LIVED_EXPIRES_IN,
        gt=0,
        description="Expiry assumed for long-lived tokens when the provider omits it",
    )
    request_timeout_seconds: float = Field(
        default_factory=lambda: float(
            os.getenv(
                EnvironmentVariable.PROVIDER_TIMEOUT_SECONDS.value, str(Timeouts.PROVIDER_REQUEST)
            )
        ),
        gt=0,
        description="Default timeout for provider HTTP calls",
    )
    refresh_wait_seconds: float = Field(
        default=Timeouts.REFRESH_WAIT,
        gt=0,
        description="How long a caller waits on another caller's in-flight refresh",
    )

    @field_validator("meta_api_version")
    def validate_api_version(cls, v: str) -> str:
        """Graph API versions look like 'v18.0'."""
        if not v.startswith("v"):
            raise ValueError(f"Invalid Graph API version: {v}")
        return v


class PermissionConfig(BaseModel):
    """Workspace permission settings."""

    bulk_max_workers: int = Field(
        default_factory=lambda: int(
            os.getenv(
                EnvironmentVariable.PERMISSION_BULK_MAX_WORKERS.value,
                str(Limits.DEFAULT_BULK_MAX_WORKERS),
            )
        ),
        ge=1,
        le=Limits.MAX_BULK_MAX_WORKERS,
        description="Concurrent writers used by bulk permission assignment",
    )
    admin_identifier: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.PERMISSION_ADMIN_IDENTIFIER.value, "user:update"
        ),
        description="Permission that allows granting permissions to others",
    )
    unify_denials: bool = Field(
        default_factory=lambda: _env_flag(EnvironmentVariable.UNIFY_DENIALS, "true"),
        description="Report missing workspace context as a plain denial at the boundary",
    )


class SecurityConfig(BaseModel):
    """Security-related configuration."""

    encryption_key: Optional[str] = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.ENCRYPTION_KEY.value),
        description="Symmetric key used for token encryption on PostgreSQL",
        repr=False,
    )


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.APP_ENV.value, "development"),
        description="Application environment",
    )
    debug: bool = Field(
        default_factory=lambda: _env_flag(EnvironmentVariable.DEBUG),
        description="Debug mode",
    )

    queue: QueueConfig = Field(default_factory=QueueConfig, description="Queue configuration")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    features: FeatureFlags = Field(default_factory=FeatureFlags, description="Feature flags")
    providers: ProviderConfig = Field(
        default_factory=ProviderConfig, description="Platform API configuration"
    )
    permissions: PermissionConfig = Field(
        default_factory=PermissionConfig, description="Permission configuration"
    )
    security: SecurityConfig = Field(
        default_factory=SecurityConfig, description="Security configuration"
    )

    custom: Dict[str, Any] = Field(default_factory=dict, description="Custom configuration values")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls()

    def get_custom(self, key: str, default: Any = None) -> Any:
        """Get a custom configuration value."""
        return self.custom.get(key, default)


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
