"""
Pydantic schemas for platform credentials.

TokenGrant is what a provider hands back from a code exchange or refresh;
CredentialRead is a detached snapshot of a stored credential that is safe to
pass between threads and sessions.
"""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..enums import AuthType, CredentialStatus, Platform, PrincipalType


class TokenGrant(BaseModel):
    """Tokens returned by a provider's code exchange or refresh endpoint."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    access_token: str = Field(..., min_length=1, description="OAuth access token")
    refresh_token: Optional[str] = Field(None, description="OAuth refresh token")
    expires_in: Optional[int] = Field(None, gt=0, description="Token lifetime in seconds")
    scope: Optional[str] = Field(None, description="Granted scopes, comma or space separated")
    token_type: str = Field(default="bearer", description="Token type")

    @field_validator("token_type")
    @classmethod
    def normalize_token_type(cls, v: str) -> str:
        return v.lower()

    def expires_at(self, issued_at: datetime) -> Optional[datetime]:
        """Absolute expiry for this grant, or None for non-expiring tokens."""
        if self.expires_in is None:
            return None
        return issued_at + timedelta(seconds=self.expires_in)


class CredentialRead(BaseModel):
    """Decrypted, detached view of a stored credential."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    principal_id: str
    principal_type: PrincipalType
    platform: Platform
    auth_type: AuthType = AuthType.OAUTH2
    status: CredentialStatus
    is_active: bool
    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    last_used_at: Optional[datetime] = None
    usage_count: int = 0
    last_refreshed_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        """Hard boundary: a token is unusable from its expiry instant on."""
        return self.expires_at is not None and now >= self.expires_at


class ResolvedToken(BaseModel):
    """Token to use for platform calls made as an account."""

    access_token: str = Field(repr=False)
    is_delegated: bool = False
    agency_id: Optional[str] = None
    account_id: str


class AuthorizationRequest(BaseModel):
    """Where to send a user to start an OAuth connection."""

    platform: Platform
    url: str
    state: str
