"""
Factory Boy factories for generating consistent test data.

Model factories commit through the scoped session of the global database
manager, which is the same session the ``db_session`` fixture hands out.
Credentials go through CredentialStore so their tokens are stored the same
way production code stores them.
"""

from datetime import datetime
from typing import Optional

import factory

from ad_access_core.db import Agency, PermissionAssignment, PlatformAccount
from ad_access_core.db.db_config import get_db_manager
from ad_access_core.enums import Platform, PrincipalType
from ad_access_core.schemas.credential_schemas import TokenGrant
from ad_access_core.services.credential_store import CredentialStore

# ==================== BASE FACTORIES ====================


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    """Base factory with common patterns."""

    class Meta:
        abstract = True
        sqlalchemy_session_factory = lambda: get_db_manager().get_session()  # noqa: E731
        sqlalchemy_session_persistence = "commit"


# ==================== PRINCIPAL FACTORIES ====================


class PlatformAccountFactory(BaseFactory):
    """Factory for connected advertising accounts."""

    class Meta:
        model = PlatformAccount

    workspace_id = factory.Sequence(lambda n: f"workspace-{n}")
    platform = Platform.META.value
    external_resource_id = factory.Sequence(lambda n: f"act_{100000 + n}")
    name = factory.Sequence(lambda n: f"Account {n}")
    created_by = "user-owner"
    is_active = True


class AgencyFactory(BaseFactory):
    """Factory for agencies."""

    class Meta:
        model = Agency

    owner_user_id = factory.Sequence(lambda n: f"agency-owner-{n}")
    platform = Platform.META.value
    external_business_id = factory.Sequence(lambda n: f"biz_{n}")
    name = factory.Sequence(lambda n: f"Agency {n}")
    is_active = True


# ==================== PERMISSION FACTORIES ====================


class PermissionAssignmentFactory(BaseFactory):
    """Factory for (user, workspace) permission rows."""

    class Meta:
        model = PermissionAssignment

    user_id = factory.Sequence(lambda n: f"user-{n}")
    workspace_id = "workspace-main"
    permission_ids = factory.LazyFunction(lambda: ["campaign:view"])
    grant_history = factory.LazyFunction(list)
    created_by = "user-admin"
    updated_by = "user-admin"


# ==================== CREDENTIALS ====================


def create_credential(
    session,
    principal,
    issued_at: datetime,
    access_token: str = "access-initial",
    refresh_token: Optional[str] = "refresh-initial",
    expires_in: Optional[int] = 3600,
    principal_type: Optional[PrincipalType] = None,
):
    """Store an active credential for ``principal`` through the CredentialStore."""
    if principal_type is None:
        principal_type = (
            PrincipalType.AGENCY if isinstance(principal, Agency) else PrincipalType.ACCOUNT
        )
    grant = TokenGrant(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        scope="ads_management",
    )
    return CredentialStore(session).create_active(
        principal.id, principal_type, principal.platform, grant, issued_at=issued_at
    )
