"""
Agency delegation.

An account managed by an agency makes its platform calls with the agency's
credential. The link that enables this is created only after the platform
itself confirms the agency was granted access to the account's resource.
"""

from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..context.operation_context import operation
from ..db.db_base import utc_now
from ..db.db_principal_models import Agency, DelegationLink, PlatformAccount
from ..exceptions import (
    CredentialExpiredError,
    CredentialNotFoundError,
    CredentialRevokedError,
    DelegationNotVerifiedError,
    ErrorCode,
    PermissionDeniedError,
    RepositoryError,
)
from ..schemas.credential_schemas import ResolvedToken
from ..schemas.delegation_schemas import DelegationLinkRead, PlatformAccountRead
from ..utils.crud_helpers import get_record, list_records, require_record
from ..utils.logger import get_logger
from .token_lifecycle_service import TokenLifecycleManager


class DelegationResolver:
    """Chooses between an account's own credential and its agency's."""

    def __init__(self, session: Session, token_manager: TokenLifecycleManager):
        self.session = session
        self.token_manager = token_manager
        self.registry = token_manager.registry
        self.logger = get_logger()

    def _get_link(self, account_id: str) -> Optional[DelegationLink]:
        return get_record(self.session, DelegationLink, {"account_id": account_id})

    # ==================== Token resolution ====================

    @operation()
    def resolve_token(self, account_id: str, timeout: Optional[float] = None) -> ResolvedToken:
        """
        Access token to use for platform calls made as this account.

        Raises:
            RepositoryError: If the account does not exist
            CredentialExpiredError / CredentialRevokedError / CredentialNotFoundError:
                From the chosen principal's credential
        """
        require_record(self.session, PlatformAccount, account_id, account_id=account_id)

        link = self._get_link(account_id)
        if link is None:
            token = self.token_manager.get_valid_token(account_id, timeout=timeout)
            return ResolvedToken(access_token=token, is_delegated=False, account_id=account_id)

        token = self.token_manager.get_valid_token(link.agency_id, timeout=timeout)
        return ResolvedToken(
            access_token=token,
            is_delegated=True,
            agency_id=link.agency_id,
            account_id=account_id,
        )

    # ==================== Linking ====================

    @operation()
    def link_account_to_agency(
        self,
        account_id: str,
        agency_id: str,
        requesting_user_id: str,
        timeout: Optional[float] = None,
    ) -> DelegationLinkRead:
        """
        Let an agency manage an account after verifying its platform access.

        Args:
            account_id: Managed account
            agency_id: Agency that will act for the account
            requesting_user_id: User asking for the link; must own the agency
            timeout: Provider call timeout in seconds

        Returns:
            The persisted link

        Raises:
            RepositoryError: Account or agency not found
            PermissionDeniedError: The requesting user does not own the agency
            DelegationNotVerifiedError: Platform mismatch, no usable agency
                credential, or the platform denies the agency access
            UnsupportedPlatformError: No gateway for the platform
            ProviderError: The access check failed upstream (retryable)
        """
        account = require_record(self.session, PlatformAccount, account_id, account_id=account_id)
        agency = require_record(self.session, Agency, agency_id, agency_id=agency_id)

        if agency.owner_user_id != requesting_user_id:
            raise PermissionDeniedError(
                "Requesting user does not own this agency",
                agency_id=agency_id,
                user_id=requesting_user_id,
            )

        context = {"account_id": account_id, "agency_id": agency_id}

        if account.platform != agency.platform:
            raise DelegationNotVerifiedError(
                "Account and agency are on different platforms",
                account_platform=account.platform,
                agency_platform=agency.platform,
                **context,
            )

        try:
            agency_token = self.token_manager.get_valid_token(agency_id, timeout=timeout)
        except (CredentialNotFoundError, CredentialExpiredError, CredentialRevokedError) as e:
            raise DelegationNotVerifiedError(
                "Agency has no active credential", cause=e, **context
            ) from e

        gateway = self.registry.get(account.platform)
        options = self.token_manager.request_options(timeout)
        if not gateway.verify_delegated_access(agency_token, account.external_resource_id, options):
            raise DelegationNotVerifiedError(
                "Platform did not confirm agency access to the account",
                external_resource_id=account.external_resource_id,
                **context,
            )

        return self._save_link(account_id, agency_id, requesting_user_id)

    def _save_link(
        self, account_id: str, agency_id: str, requesting_user_id: str
    ) -> DelegationLinkRead:
        now = utc_now()
        link = self._get_link(account_id)
        previous_agency = link.agency_id if link else None
        try:
            if link is None:
                link = DelegationLink(
                    account_id=account_id,
                    agency_id=agency_id,
                    linked_by=requesting_user_id,
                    verified_at=now,
                )
                self.session.add(link)
            else:
                link.agency_id = agency_id
                link.linked_by = requesting_user_id
                link.verified_at = now
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise RepositoryError(
                "Account was linked concurrently",
                error_code=ErrorCode.CONFLICT,
                status_code=409,
                cause=e,
                account_id=account_id,
            ) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryError(
                f"Failed to save delegation link: {str(e)}", cause=e, account_id=account_id
            ) from e

        self.logger.info(
            "Account linked to agency",
            extra={
                "account_id": account_id,
                "agency_id": agency_id,
                "previous_agency_id": previous_agency,
                "linked_by": requesting_user_id,
            },
        )
        return DelegationLinkRead.model_validate(link)

    @operation()
    def unlink(self, account_id: str, requesting_user_id: Optional[str] = None) -> bool:
        """
        Remove an account's delegation link.

        Returns:
            True if a link was removed, False if there was none

        Raises:
            PermissionDeniedError: The requesting user does not own the linked agency
        """
        link = self._get_link(account_id)
        if link is None:
            return False

        if requesting_user_id is not None:
            agency = require_record(self.session, Agency, link.agency_id, agency_id=link.agency_id)
            if agency.owner_user_id != requesting_user_id:
                raise PermissionDeniedError(
                    "Requesting user does not own the linked agency",
                    agency_id=link.agency_id,
                    user_id=requesting_user_id,
                )

        agency_id = link.agency_id
        try:
            self.session.delete(link)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryError(
                f"Failed to remove delegation link: {str(e)}", cause=e, account_id=account_id
            ) from e

        self.logger.info(
            "Account unlinked from agency",
            extra={"account_id": account_id, "agency_id": agency_id},
        )
        return True

    # ==================== Queries ====================

    def get_managed_accounts(self, agency_id: str) -> List[PlatformAccountRead]:
        """Accounts currently delegated to the agency."""
        require_record(self.session, Agency, agency_id, agency_id=agency_id)
        account_ids = [
            link.account_id
            for link in list_records(self.session, DelegationLink, {"agency_id": agency_id})
        ]
        if not account_ids:
            return []
        accounts = (
            self.session.query(PlatformAccount)
            .filter(PlatformAccount.id.in_(account_ids), PlatformAccount.is_active.is_(True))
            .order_by(PlatformAccount.created_at)
            .all()
        )
        return [PlatformAccountRead.model_validate(a) for a in accounts]

    def get_account_agency(self, account_id: str) -> Optional[str]:
        """Id of the agency managing the account, if any."""
        link = self._get_link(account_id)
        return link.agency_id if link else None

    def is_account_managed_by_agency(self, account_id: str, agency_id: str) -> bool:
        return self.get_account_agency(account_id) == agency_id
