"""
Provider gateway contract.

A gateway wraps one platform's OAuth and resource endpoints. Gateways hold
only static application settings; every token and every per-call option is
passed in explicitly, so one gateway instance serves all principals and
threads.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..enums import Platform
from ..schemas.credential_schemas import TokenGrant


class ProviderRequestOptions(BaseModel):
    """Per-call settings for a provider request."""

    model_config = ConfigDict(frozen=True)

    timeout: Optional[float] = Field(default=None, gt=0, description="Seconds before giving up")
    api_version: Optional[str] = Field(default=None, description="Override the API version")
    redirect_uri: Optional[str] = Field(default=None, description="Override the redirect URI")


class ProviderGateway(ABC):
    """
    OAuth and resource-access operations for one platform.

    Implementations raise ``ProviderRejectedError`` when the platform gives a
    definitive refusal and a retryable ``ProviderError`` for anything
    ambiguous (timeouts, 5xx, connection failures).
    """

    platform: Platform

    @abstractmethod
    def get_auth_url(self, state: str, options: Optional[ProviderRequestOptions] = None) -> str:
        """URL the user visits to grant access."""

    @abstractmethod
    def exchange_code(
        self, code: str, options: Optional[ProviderRequestOptions] = None
    ) -> TokenGrant:
        """Trade a one-time authorization code for tokens."""

    @abstractmethod
    def refresh(
        self, refresh_token: str, options: Optional[ProviderRequestOptions] = None
    ) -> TokenGrant:
        """Obtain fresh tokens."""

    @abstractmethod
    def revoke(self, access_token: str, options: Optional[ProviderRequestOptions] = None) -> bool:
        """Revoke a token. True only when the platform confirms revocation."""

    @abstractmethod
    def validate(self, access_token: str, options: Optional[ProviderRequestOptions] = None) -> bool:
        """Whether the platform still accepts the token."""

    @abstractmethod
    def verify_delegated_access(
        self,
        agency_token: str,
        external_resource_id: str,
        options: Optional[ProviderRequestOptions] = None,
    ) -> bool:
        """Whether the agency token has been granted access to the resource."""
