"""
Principal models: connected platform accounts, agencies, and the delegation
link between them.

Just the data structure; lifecycle rules live in the services.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String

from .db_base import TimestampMixin, UUIDMixin
from .db_config import Base


class PlatformAccount(Base, UUIDMixin, TimestampMixin):
    """An advertising account (page, ad account) connected by a workspace."""

    __tablename__ = "platform_accounts"

    workspace_id = Column(String(36), nullable=False, index=True)
    platform = Column(String(32), nullable=False)
    # Id of the page / ad account on the platform side
    external_resource_id = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    created_by = Column(String(36), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index(
            "ix_platform_account_resource",
            "workspace_id",
            "platform",
            "external_resource_id",
            unique=True,
        ),
    )


class Agency(Base, UUIDMixin, TimestampMixin):
    """An agency principal that can manage accounts on behalf of workspaces."""

    __tablename__ = "agencies"

    owner_user_id = Column(String(36), nullable=False, index=True)
    platform = Column(String(32), nullable=False)
    # Business manager / organization id on the platform side
    external_business_id = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class DelegationLink(Base, UUIDMixin, TimestampMixin):
    """Verified relation letting an agency's credential act for an account."""

    __tablename__ = "delegation_links"

    account_id = Column(
        String(36), ForeignKey("platform_accounts.id", ondelete="CASCADE"), nullable=False
    )
    agency_id = Column(String(36), ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False)
    linked_by = Column(String(36), nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        # An account is managed by at most one agency
        Index("ix_delegation_account", "account_id", unique=True),
        Index("ix_delegation_agency", "agency_id"),
    )
