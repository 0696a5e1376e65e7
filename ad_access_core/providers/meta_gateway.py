"""
Meta (Facebook/Instagram) Graph API gateway.

Code exchange returns a long-lived user token (the short-lived token from the
OAuth dialog is traded immediately). Meta issues no refresh tokens, so the
long-lived token is also stored as the refresh token: ``refresh`` re-exchanges
it for a new one while it is still valid, and Meta rejects it once expired.
"""

from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import requests

from ..config import ProviderConfig
from ..constants import MetaGraph
from ..enums import Platform
from ..exceptions import ErrorCode, ProviderError, ProviderRejectedError
from ..schemas.credential_schemas import TokenGrant
from ..utils.logger import get_logger
from .base import ProviderGateway, ProviderRequestOptions

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class MetaGateway(ProviderGateway):
    """Graph API implementation of ProviderGateway."""

    platform = Platform.META

    def __init__(self, settings: ProviderConfig, http: Optional[requests.Session] = None):
        """
        Args:
            settings: Application id, secret, redirect URI and defaults
            http: Session used for all calls; a new one is created if omitted
        """
        self.settings = settings
        self.http = http or requests.Session()
        self.logger = get_logger()

    # ==================== Helpers ====================

    def _version(self, options: Optional[ProviderRequestOptions]) -> str:
        return (options and options.api_version) or self.settings.meta_api_version

    def _timeout(self, options: Optional[ProviderRequestOptions]) -> float:
        return (options and options.timeout) or self.settings.request_timeout_seconds

    def _redirect_uri(self, options: Optional[ProviderRequestOptions]) -> str:
        return (options and options.redirect_uri) or self.settings.meta_redirect_uri

    def _request(
        self,
        method: str,
        path: str,
        options: Optional[ProviderRequestOptions],
        *,
        access_token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Dict[str, Any]]:
        """
        Perform one Graph call.

        Transport failures, retryable statuses and throttling errors raise a
        retryable ProviderError. Other responses are returned as (status, json) so the
        caller decides what a 4xx means for its operation.
        """
        url = f"{MetaGraph.GRAPH_BASE_URL}/{self._version(options)}/{path.lstrip('/')}"
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}

        try:
            response = self.http.request(
                method,
                url,
                params=params,
                data=data,
                headers=headers,
                timeout=self._timeout(options),
            )
        except requests.Timeout as e:
            raise ProviderError(
                f"Meta request timed out: {method} {path}",
                platform=self.platform.value,
                retryable=True,
                error_code=ErrorCode.TIMEOUT_ERROR,
                cause=e,
                path=path,
            ) from e
        except requests.RequestException as e:
            raise ProviderError(
                f"Meta request failed: {method} {path}",
                platform=self.platform.value,
                retryable=True,
                cause=e,
                path=path,
            ) from e

        if response.status_code in _RETRYABLE_STATUS:
            raise ProviderError(
                f"Meta returned {response.status_code} for {method} {path}",
                platform=self.platform.value,
                retryable=True,
                status=response.status_code,
                path=path,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(
                f"Meta returned a non-JSON body for {method} {path}",
                platform=self.platform.value,
                retryable=True,
                cause=e,
                status=response.status_code,
                path=path,
            ) from e

        if not isinstance(payload, dict):
            payload = {"data": payload}

        error = payload.get("error") or {}
        if response.status_code >= 400 and error.get("code") in MetaGraph.THROTTLING_ERROR_CODES:
            raise ProviderError(
                f"Meta throttled {method} {path}: {error.get('message', 'rate limit reached')}",
                platform=self.platform.value,
                retryable=True,
                error_code=ErrorCode.RATE_LIMITED,
                status=response.status_code,
                provider_error_code=error.get("code"),
                path=path,
            )
        return response.status_code, payload

    def _raise_rejected(self, operation: str, status: int, payload: Dict[str, Any]) -> None:
        error = payload.get("error") or {}
        raise ProviderRejectedError(
            f"Meta rejected {operation}: {error.get('message', 'unknown error')}",
            platform=self.platform.value,
            status=status,
            provider_error_code=error.get("code"),
            provider_error_type=error.get("type"),
        )

    def _token_call(self, operation: str, method: str, options, **kwargs) -> Dict[str, Any]:
        status, payload = self._request(method, "oauth/access_token", options, **kwargs)
        if status >= 400 or "error" in payload or not payload.get("access_token"):
            self._raise_rejected(operation, status, payload)
        return payload

    def _exchange_long_lived(self, token: str, options) -> Dict[str, Any]:
        return self._token_call(
            "long-lived token exchange",
            "GET",
            options,
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.settings.meta_app_id,
                "client_secret": self.settings.meta_app_secret,
                "fb_exchange_token": token,
            },
        )

    def _grant(self, payload: Dict[str, Any], scope: Optional[str] = None) -> TokenGrant:
        return TokenGrant(
            access_token=payload["access_token"],
            refresh_token=payload["access_token"],
            expires_in=payload.get("expires_in") or self.settings.long_lived_expires_in,
            scope=scope,
            token_type=payload.get("token_type", "bearer"),
        )

    # ==================== Authentication ====================

    def get_auth_url(self, state: str, options: Optional[ProviderRequestOptions] = None) -> str:
        params = {
            "client_id": self.settings.meta_app_id,
            "redirect_uri": self._redirect_uri(options),
            "scope": ",".join(MetaGraph.SCOPES),
            "response_type": "code",
            "state": state,
        }
        base = f"{MetaGraph.DIALOG_BASE_URL}/{self._version(options)}/dialog/oauth"
        return f"{base}?{urlencode(params)}"

    def exchange_code(
        self, code: str, options: Optional[ProviderRequestOptions] = None
    ) -> TokenGrant:
        short_lived = self._token_call(
            "code exchange",
            "POST",
            options,
            data={
                "client_id": self.settings.meta_app_id,
                "client_secret": self.settings.meta_app_secret,
                "redirect_uri": self._redirect_uri(options),
                "code": code,
            },
        )
        long_lived = self._exchange_long_lived(short_lived["access_token"], options)

        self.logger.info(
            "Meta code exchanged for long-lived token",
            extra={"expires_in": long_lived.get("expires_in")},
        )
        return self._grant(long_lived, scope=short_lived.get("scope"))

    def refresh(
        self, refresh_token: str, options: Optional[ProviderRequestOptions] = None
    ) -> TokenGrant:
        return self._grant(self._exchange_long_lived(refresh_token, options))

    def revoke(self, access_token: str, options: Optional[ProviderRequestOptions] = None) -> bool:
        status, payload = self._request(
            "DELETE", "me/permissions", options, access_token=access_token
        )
        if status >= 400:
            error = payload.get("error") or {}
            if error.get("code") == MetaGraph.INVALID_TOKEN_ERROR_CODE:
                # Meta no longer recognizes the token; nothing left to revoke remotely
                return False
            self._raise_rejected("revoke", status, payload)
        return bool(payload.get("success"))

    def validate(self, access_token: str, options: Optional[ProviderRequestOptions] = None) -> bool:
        status, payload = self._request(
            "GET", "me", options, access_token=access_token, params={"fields": "id"}
        )
        if status >= 400:
            error = payload.get("error") or {}
            if status == 401 or error.get("code") == MetaGraph.INVALID_TOKEN_ERROR_CODE:
                return False
            self._raise_rejected("validate", status, payload)
        return bool(payload.get("id"))

    def verify_delegated_access(
        self,
        agency_token: str,
        external_resource_id: str,
        options: Optional[ProviderRequestOptions] = None,
    ) -> bool:
        status, payload = self._request(
            "GET",
            external_resource_id,
            options,
            access_token=agency_token,
            params={"fields": "id,name"},
        )
        if status >= 400:
            self.logger.info(
                "Meta denied delegated access check",
                extra={
                    "external_resource_id": external_resource_id,
                    "status": status,
                    "provider_error_code": (payload.get("error") or {}).get("code"),
                },
            )
            return False
        return str(payload.get("id")) == str(external_resource_id)
