"""
Credential model for platform OAuth tokens.

Just the data structure - no business logic or class methods.
"""

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, text

from ..enums import AuthType, CredentialStatus
from .db_base import JSON, EncryptedBinary, TimestampMixin, UUIDMixin
from .db_config import Base


class Credential(Base, UUIDMixin, TimestampMixin):
    """Access/refresh token pair held by one principal on one platform."""

    __tablename__ = "platform_credentials"

    principal_id = Column(String(36), nullable=False, index=True)
    principal_type = Column(String(16), nullable=False)
    platform = Column(String(32), nullable=False)
    auth_type = Column(String(16), nullable=False, default=AuthType.OAUTH2.value)

    status = Column(String(16), nullable=False, default=CredentialStatus.ACTIVE.value)
    is_active = Column(Boolean, nullable=False, default=True)

    # Encrypted storage
    access_token = Column(EncryptedBinary, nullable=False)
    refresh_token = Column(EncryptedBinary, nullable=True)

    # None means the token does not expire
    expires_at = Column(DateTime(timezone=True), nullable=True)
    scope = Column(String(1024), nullable=True)

    last_used_at = Column(DateTime(timezone=True), nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    last_refreshed_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency for token writes
    version = Column(Integer, nullable=False, default=1)

    token_metadata = Column(JSON, nullable=True)

    __table_args__ = (
        Index(
            "uq_credential_active_principal",
            "principal_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_credential_principal_created", "principal_id", "created_at"),
    )
