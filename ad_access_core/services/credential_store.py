"""
Durable storage of platform credentials.

The store owns every write to ``platform_credentials`` so the lifecycle
rules hold in one place:

- at most one active credential per principal (also enforced by a partial
  unique index);
- a new credential supersedes the prior active one, which is kept as
  ``expired`` for the audit trail;
- token writes are conditional on the version the caller read.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.db_base import as_utc, utc_now
from ..db.db_credential_models import Credential
from ..db.db_principal_models import Agency, PlatformAccount
from ..enums import AuthType, CredentialStatus, PrincipalType
from ..exceptions import CredentialNotFoundError, ErrorCode, RepositoryError, not_found
from ..schemas.credential_schemas import CredentialRead, TokenGrant
from ..utils.crud_helpers import get_record_by_id
from ..utils.encryption_utils import decrypt_token, encrypt_token
from ..utils.logger import get_logger

Principal = Union[PlatformAccount, Agency]

_PRINCIPAL_MODELS = {
    PrincipalType.ACCOUNT: PlatformAccount,
    PrincipalType.AGENCY: Agency,
}


class CredentialStore:
    """Persistence for credentials and the principals that own them."""

    def __init__(self, session: Session):
        self.session = session
        self.logger = get_logger()

    # ==================== Principals ====================

    def get_principal(
        self, principal_id: str, principal_type: Optional[PrincipalType] = None
    ) -> Tuple[Principal, PrincipalType]:
        """
        Find the account or agency with this id.

        Raises:
            RepositoryError: 404 if neither exists
        """
        candidates = [principal_type] if principal_type else list(_PRINCIPAL_MODELS)
        for kind in candidates:
            kind = PrincipalType(kind)
            record = get_record_by_id(self.session, _PRINCIPAL_MODELS[kind], principal_id)
            if record is not None:
                return record, kind
        raise not_found("Principal", principal_id=principal_id)

    # ==================== Reads ====================

    def get(self, credential_id: str) -> Credential:
        """Load a credential, always re-reading the row from the database."""
        credential = self.session.get(Credential, credential_id, populate_existing=True)
        if credential is None:
            raise CredentialNotFoundError(
                f"Credential not found: {credential_id}", credential_id=credential_id
            )
        return credential

    def get_active(self, principal_id: str) -> Optional[Credential]:
        return (
            self.session.query(Credential)
            .populate_existing()
            .filter(
                Credential.principal_id == principal_id,
                Credential.status == CredentialStatus.ACTIVE.value,
            )
            .first()
        )

    def get_latest(self, principal_id: str) -> Optional[Credential]:
        """Most recently created credential of any status."""
        return (
            self.session.query(Credential)
            .populate_existing()
            .filter(Credential.principal_id == principal_id)
            .order_by(Credential.created_at.desc())
            .first()
        )

    def to_read(self, credential: Credential) -> CredentialRead:
        """Detached snapshot with decrypted tokens."""
        return CredentialRead(
            id=credential.id,
            principal_id=credential.principal_id,
            principal_type=credential.principal_type,
            platform=credential.platform,
            auth_type=credential.auth_type,
            status=credential.status,
            is_active=credential.is_active,
            access_token=self._decrypt(credential, credential.access_token),
            refresh_token=self._decrypt(credential, credential.refresh_token),
            expires_at=as_utc(credential.expires_at),
            scope=credential.scope,
            last_used_at=as_utc(credential.last_used_at),
            usage_count=credential.usage_count or 0,
            last_refreshed_at=as_utc(credential.last_refreshed_at),
            revoked_at=as_utc(credential.revoked_at),
            version=credential.version,
            created_at=as_utc(credential.created_at),
            updated_at=as_utc(credential.updated_at),
        )

    # ==================== Writes ====================

    def encrypt(self, principal_id: str, platform: str, token: Optional[str]) -> Optional[bytes]:
        if token is None:
            return None
        return encrypt_token(self.session, token, principal_id, platform)

    def _decrypt(self, credential: Credential, value) -> Optional[str]:
        return decrypt_token(self.session, value, credential.principal_id, credential.platform)

    def create_active(
        self,
        principal_id: str,
        principal_type: PrincipalType,
        platform: str,
        grant: TokenGrant,
        issued_at: datetime,
        auth_type: AuthType = AuthType.OAUTH2,
    ) -> Credential:
        """
        Persist a new active credential, superseding the prior active one.

        Both writes share one transaction.

        Raises:
            RepositoryError: CONFLICT if another active credential appeared
                concurrently, DATABASE_ERROR for other failures
        """
        try:
            superseded = (
                self.session.query(Credential)
                .filter(
                    Credential.principal_id == principal_id,
                    Credential.status == CredentialStatus.ACTIVE.value,
                )
                .update(
                    {
                        Credential.status: CredentialStatus.EXPIRED.value,
                        Credential.is_active: False,
                        Credential.version: Credential.version + 1,
                        Credential.updated_at: issued_at,
                    },
                    synchronize_session=False,
                )
            )

            credential = Credential(
                principal_id=principal_id,
                principal_type=PrincipalType(principal_type).value,
                platform=platform,
                auth_type=AuthType(auth_type).value,
                status=CredentialStatus.ACTIVE.value,
                is_active=True,
                access_token=self.encrypt(principal_id, platform, grant.access_token),
                refresh_token=self.encrypt(principal_id, platform, grant.refresh_token),
                expires_at=grant.expires_at(issued_at),
                scope=grant.scope,
                usage_count=0,
                version=1,
                token_metadata={"token_type": grant.token_type},
                created_at=issued_at,
                updated_at=issued_at,
            )
            self.session.add(credential)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise RepositoryError(
                "Another active credential was created concurrently",
                error_code=ErrorCode.CONFLICT,
                status_code=409,
                cause=e,
                principal_id=principal_id,
            ) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryError(
                f"Failed to store credential: {str(e)}", cause=e, principal_id=principal_id
            ) from e

        self.logger.info(
            "Credential issued",
            extra={
                "credential_id": credential.id,
                "principal_id": principal_id,
                "platform": platform,
                "superseded": superseded,
            },
        )
        return credential

    def update_versioned(
        self, credential_id: str, expected_version: int, values: Dict[str, Any]
    ) -> bool:
        """
        Apply ``values`` only if the stored version still equals ``expected_version``.

        The version is bumped as part of the same statement.

        Returns:
            True if the row was updated, False on a version mismatch
        """
        columns = {getattr(Credential, key): value for key, value in values.items()}
        columns[Credential.version] = Credential.version + 1
        columns.setdefault(Credential.updated_at, utc_now())
        try:
            updated = (
                self.session.query(Credential)
                .filter(Credential.id == credential_id, Credential.version == expected_version)
                .update(columns, synchronize_session=False)
            )
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryError(
                f"Failed to update credential: {str(e)}", cause=e, credential_id=credential_id
            ) from e
        return updated == 1

    def record_usage(self, credential_id: str, used_at: datetime) -> None:
        """Bump usage counters without touching the token version."""
        try:
            self.session.query(Credential).filter(Credential.id == credential_id).update(
                {
                    Credential.last_used_at: used_at,
                    Credential.usage_count: Credential.usage_count + 1,
                },
                synchronize_session=False,
            )
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryError(
                f"Failed to record credential usage: {str(e)}",
                cause=e,
                credential_id=credential_id,
            ) from e
