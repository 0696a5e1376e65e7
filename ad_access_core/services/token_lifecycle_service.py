"""
Credential lifecycle: issuance, refresh, revocation and validation.

The manager calls the platform gateway and persists outcomes through the
CredentialStore. Two rules shape every method:

- provider answers that are ambiguous (timeouts, 5xx) never change a
  credential's status; only definitive answers do;
- concurrent refreshes of one credential collapse into a single upstream
  call, and token writes are conditional on the version read at the start.
"""

import secrets
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..config import AppConfig, get_config
from ..constants import Limits
from ..context.operation_context import operation
from ..db.db_base import utc_now
from ..enums import CredentialStatus, Platform, PrincipalType
from ..exceptions import (
    CredentialExpiredError,
    CredentialNotFoundError,
    CredentialRevokedError,
    ErrorCode,
    ProviderError,
    ProviderRejectedError,
    RepositoryError,
    ServiceError,
)
from ..providers.base import ProviderRequestOptions
from ..providers.registry import ProviderRegistry
from ..schemas.credential_schemas import AuthorizationRequest, CredentialRead
from ..utils.logger import get_logger
from ..utils.single_flight import SingleFlight
from .credential_store import CredentialStore

# Process-wide: refreshes of one credential collapse across every manager instance
_refresh_flights = SingleFlight()


class TokenLifecycleManager:
    """
    Orchestrates credential issuance, refresh, revocation and validation.

    Each instance works on one SQLAlchemy session and is meant to serve one
    request (or one worker thread). The provider registry and the single-flight
    registry are shared.
    """

    def __init__(
        self,
        session: Session,
        registry: ProviderRegistry,
        store: Optional[CredentialStore] = None,
        single_flight: Optional[SingleFlight] = None,
        clock: Callable[[], datetime] = utc_now,
        config: Optional[AppConfig] = None,
    ):
        """
        Args:
            session: Database session for this request
            registry: Platform gateways
            store: Credential store (defaults to one bound to ``session``)
            single_flight: Refresh collapse registry (defaults to the process-wide one)
            clock: Source of "now"; expiry is compared against it on every call
            config: Application config (defaults to the global one)
        """
        self.session = session
        self.registry = registry
        self.store = store or CredentialStore(session)
        self.single_flight = single_flight or _refresh_flights
        self.clock = clock
        self.config = config or get_config()
        self.logger = get_logger()

    def request_options(self, timeout: Optional[float]) -> ProviderRequestOptions:
        return ProviderRequestOptions(
            timeout=timeout or self.config.providers.request_timeout_seconds
        )

    # ==================== Authorization URL ====================

    def get_auth_url(
        self, platform: Platform, state: Optional[str] = None
    ) -> AuthorizationRequest:
        """
        Build the URL that starts an OAuth connection.

        A random state is generated when none is given; the caller stores it
        and compares it on the callback.
        """
        state = state or secrets.token_urlsafe(Limits.STATE_TOKEN_BYTES)
        gateway = self.registry.get(platform)
        return AuthorizationRequest(
            platform=gateway.platform, url=gateway.get_auth_url(state), state=state
        )

    # ==================== Issue ====================

    @operation()
    def issue(
        self,
        principal_id: str,
        authorization_code: str,
        principal_type: Optional[PrincipalType] = None,
        timeout: Optional[float] = None,
    ) -> CredentialRead:
        """
        Exchange an authorization code and store the resulting credential.

        Args:
            principal_id: Account or agency the credential belongs to
            authorization_code: One-time code from the OAuth callback
            principal_type: Skip the principal-type lookup when known
            timeout: Provider call timeout in seconds

        Returns:
            Snapshot of the new active credential

        Raises:
            ProviderError: If the exchange is rejected or fails upstream
            UnsupportedPlatformError: If the principal's platform has no gateway
            RepositoryError: If the principal does not exist
        """
        principal, kind = self.store.get_principal(principal_id, principal_type)
        gateway = self.registry.get(principal.platform)

        grant = gateway.exchange_code(authorization_code, self.request_options(timeout))

        for attempt in (1, 2):
            try:
                credential = self.store.create_active(
                    principal_id, kind, principal.platform, grant, issued_at=self.clock()
                )
                return self.store.to_read(credential)
            except RepositoryError as e:
                if e.error_code != ErrorCode.CONFLICT or attempt == 2:
                    raise
                self.logger.warning(
                    "Concurrent issue detected, superseding again",
                    extra={"principal_id": principal_id},
                )

    # ==================== Token access ====================

    @operation()
    def get_valid_token(self, principal_id: str, timeout: Optional[float] = None) -> str:
        """
        Return a usable access token for the principal.

        An expired credential with a refresh token is refreshed (once across
        concurrent callers).

        Raises:
            CredentialNotFoundError: The principal never connected
            CredentialExpiredError: Expired and not refreshable
            CredentialRevokedError: The latest credential was revoked
            ProviderError: The refresh failed ambiguously (retryable)
        """
        credential = self.store.get_active(principal_id)
        if credential is None:
            self._raise_for_missing(principal_id)

        snapshot = self.store.to_read(credential)
        now = self.clock()
        if not snapshot.is_expired(now):
            self.store.record_usage(snapshot.id, now)
            return snapshot.access_token

        if not snapshot.refresh_token:
            self._set_status(snapshot, CredentialStatus.EXPIRED)
            raise CredentialExpiredError(
                "Credential expired and has no refresh token; re-authentication required",
                credential_id=snapshot.id,
                principal_id=principal_id,
            )

        refreshed = self._refresh_collapsed(snapshot.id, timeout, only_if_expired=True)
        return refreshed.access_token

    get_valid_access_token = get_valid_token

    def _raise_for_missing(self, principal_id: str) -> None:
        latest = self.store.get_latest(principal_id)
        if latest is None:
            raise CredentialNotFoundError(
                f"No credential for principal {principal_id}", principal_id=principal_id
            )
        if latest.status == CredentialStatus.REVOKED.value:
            raise CredentialRevokedError(
                credential_id=latest.id, principal_id=principal_id
            )
        raise CredentialExpiredError(
            credential_id=latest.id, principal_id=principal_id, status=latest.status
        )

    # ==================== Refresh ====================

    @operation()
    def refresh(self, credential_id: str, timeout: Optional[float] = None) -> CredentialRead:
        """
        Refresh a credential's tokens.

        Raises:
            CredentialExpiredError: No refresh token, or the provider rejected it
                (the credential is marked expired)
            CredentialRevokedError: The credential was revoked
            ProviderError: Ambiguous upstream failure; nothing was changed
        """
        return self._refresh_collapsed(credential_id, timeout, only_if_expired=False)

    def _refresh_collapsed(
        self, credential_id: str, timeout: Optional[float], only_if_expired: bool
    ) -> CredentialRead:
        try:
            result, shared = self.single_flight.do(
                credential_id,
                lambda: self._do_refresh(credential_id, timeout, only_if_expired),
                timeout=self.config.providers.refresh_wait_seconds,
            )
        except FutureTimeoutError as e:
            raise ProviderError(
                "Timed out waiting for an in-flight refresh",
                platform="unknown",
                retryable=True,
                error_code=ErrorCode.TIMEOUT_ERROR,
                credential_id=credential_id,
            ) from e

        if shared:
            self.logger.info(
                "Joined in-flight refresh", extra={"credential_id": credential_id}
            )
        return result

    def _do_refresh(
        self, credential_id: str, timeout: Optional[float], only_if_expired: bool
    ) -> CredentialRead:
        snapshot = self.store.to_read(self.store.get(credential_id))

        if snapshot.status == CredentialStatus.REVOKED:
            raise CredentialRevokedError(credential_id=credential_id)
        if only_if_expired and not snapshot.is_expired(self.clock()):
            # Refreshed by someone else between our read and this flight
            return snapshot
        if not snapshot.refresh_token:
            raise CredentialExpiredError(
                "Credential has no refresh token", credential_id=credential_id
            )

        gateway = self.registry.get(snapshot.platform)
        try:
            grant = gateway.refresh(snapshot.refresh_token, self.request_options(timeout))
        except ProviderRejectedError as e:
            if not self._set_status(snapshot, CredentialStatus.EXPIRED):
                current = self.store.to_read(self.store.get(credential_id))
                if current.status == CredentialStatus.ACTIVE and not current.is_expired(
                    self.clock()
                ):
                    # Another caller renewed the tokens while ours was being rejected
                    return current
            raise CredentialExpiredError(
                "Provider rejected the refresh token; re-authentication required",
                cause=e,
                credential_id=credential_id,
                platform=snapshot.platform.value,
            ) from e

        now = self.clock()
        values = {
            "access_token": self.store.encrypt(
                snapshot.principal_id, snapshot.platform.value, grant.access_token
            ),
            "refresh_token": self.store.encrypt(
                snapshot.principal_id,
                snapshot.platform.value,
                grant.refresh_token or snapshot.refresh_token,
            ),
            "expires_at": grant.expires_at(now),
            "scope": grant.scope or snapshot.scope,
            "last_refreshed_at": now,
            "last_used_at": now,
        }
        written = self._write(
            snapshot,
            values,
            operation="refresh",
            retry_if=lambda current: (
                current.status == CredentialStatus.ACTIVE
                and current.access_token == snapshot.access_token
                and current.last_refreshed_at == snapshot.last_refreshed_at
            ),
        )

        refreshed = self.store.to_read(self.store.get(credential_id))
        if not written:
            if refreshed.status == CredentialStatus.REVOKED:
                raise CredentialRevokedError(
                    "Credential was revoked concurrently", credential_id=credential_id
                )
            if refreshed.status != CredentialStatus.ACTIVE:
                raise CredentialExpiredError(
                    credential_id=credential_id, status=refreshed.status.value
                )
            self.logger.info(
                "Concurrent refresh won, keeping its tokens",
                extra={"credential_id": credential_id, "version": refreshed.version},
            )
            return refreshed

        self.logger.info(
            "Credential refreshed",
            extra={
                "credential_id": credential_id,
                "version": refreshed.version,
                "expires_at": refreshed.expires_at,
            },
        )
        return refreshed

    # ==================== Revoke ====================

    @operation()
    def revoke(self, credential_id: str, timeout: Optional[float] = None) -> bool:
        """
        Revoke a credential at the provider, then locally.

        Returns:
            True if the provider confirmed revocation (or it was already
            revoked); False if the provider declined, in which case the
            credential is left untouched

        Raises:
            ProviderError: Ambiguous upstream failure; nothing was changed
        """
        snapshot = self.store.to_read(self.store.get(credential_id))
        if snapshot.status == CredentialStatus.REVOKED:
            return True

        gateway = self.registry.get(snapshot.platform)
        confirmed = gateway.revoke(snapshot.access_token, self.request_options(timeout))
        if not confirmed:
            self.logger.warning(
                "Provider did not confirm revocation; credential left unchanged",
                extra={"credential_id": credential_id, "platform": snapshot.platform.value},
            )
            return False

        now = self.clock()
        self._write(
            snapshot,
            {
                "status": CredentialStatus.REVOKED.value,
                "is_active": False,
                "revoked_at": now,
            },
            operation="revoke",
            retry_if=lambda current: current.status != CredentialStatus.REVOKED,
        )
        return True

    # ==================== Validate ====================

    @operation()
    def validate(self, credential_id: str, timeout: Optional[float] = None) -> bool:
        """
        Check a credential against the clock and the provider.

        An expired credential that can still be refreshed is reported invalid
        for now but keeps its status; one that cannot is marked expired. A
        negative provider answer marks the credential invalid, unless the
        credential was refreshed or revoked while the provider was asked.
        """
        snapshot = self.store.to_read(self.store.get(credential_id))
        if snapshot.status != CredentialStatus.ACTIVE:
            return False

        now = self.clock()
        if snapshot.is_expired(now):
            if not snapshot.refresh_token:
                self._set_status(snapshot, CredentialStatus.EXPIRED)
            return False

        gateway = self.registry.get(snapshot.platform)
        if not gateway.validate(snapshot.access_token, self.request_options(timeout)):
            self._set_status(snapshot, CredentialStatus.INVALID)
            return False

        self.store.record_usage(credential_id, now)
        return True

    def is_authenticated(self, principal_id: str, timeout: Optional[float] = None) -> bool:
        """
        Whether the principal holds a credential the provider still accepts.

        Credential-state failures read as False; ProviderError propagates.
        """
        credential = self.store.get_active(principal_id)
        if credential is None:
            return False
        snapshot = self.store.to_read(credential)

        try:
            if snapshot.is_expired(self.clock()) and snapshot.refresh_token:
                self.get_valid_token(principal_id, timeout=timeout)
                return True
            return self.validate(snapshot.id, timeout=timeout)
        except (CredentialExpiredError, CredentialRevokedError, CredentialNotFoundError):
            return False

    # ==================== Versioned writes ====================

    def _set_status(self, snapshot: CredentialRead, status: CredentialStatus) -> bool:
        """
        Mark the credential read in ``snapshot``.

        The decision was made about that version's tokens, so it is dropped
        (returns False) if the credential has changed since.
        """
        written = self._write(
            snapshot,
            {"status": status.value, "is_active": status == CredentialStatus.ACTIVE},
            operation=f"mark_{status.value}",
        )
        if written:
            self.logger.info(
                "Credential status changed",
                extra={
                    "credential_id": snapshot.id,
                    "from_status": snapshot.status.value,
                    "to_status": status.value,
                },
            )
        return written

    def _write(
        self,
        snapshot: CredentialRead,
        values: Dict[str, Any],
        operation: str,
        retry_if: Optional[Callable[[CredentialRead], bool]] = None,
    ) -> bool:
        """
        Conditional write against the version in ``snapshot``.

        On a version mismatch the row is re-read and ``retry_if`` decides
        whether ``values`` still hold for it; if so the write is retried once
        against the new version. Without ``retry_if`` the write is dropped.

        Returns:
            True if written, False if dropped because the credential moved on

        Raises:
            ServiceError: The version moved again during the retry
        """
        if self.store.update_versioned(snapshot.id, snapshot.version, values):
            return True

        current = self.store.to_read(self.store.get(snapshot.id))
        if retry_if is None or not retry_if(current):
            self.logger.info(
                "Credential changed meanwhile, write dropped",
                extra={
                    "credential_id": snapshot.id,
                    "operation": operation,
                    "read_version": snapshot.version,
                    "current_version": current.version,
                    "current_status": current.status.value,
                },
            )
            return False

        self.logger.warning(
            "Credential version changed, retrying write",
            extra={
                "credential_id": snapshot.id,
                "operation": operation,
                "read_version": snapshot.version,
                "current_version": current.version,
            },
        )
        if self.store.update_versioned(snapshot.id, current.version, values):
            return True

        raise ServiceError(
            "Credential changed concurrently; write abandoned",
            error_code=ErrorCode.CONFLICT,
            operation=operation,
            status_code=409,
            credential_id=snapshot.id,
        )
