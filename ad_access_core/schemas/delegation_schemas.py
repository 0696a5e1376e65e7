"""Pydantic schemas for principals and delegation links."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..enums import Platform


class PlatformAccountRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    workspace_id: str
    platform: Platform
    external_resource_id: str
    name: Optional[str] = None
    is_active: bool = True


class AgencyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_user_id: str
    platform: Platform
    external_business_id: Optional[str] = None
    name: Optional[str] = None
    is_active: bool = True


class DelegationLinkRead(BaseModel):
    """A verified account -> agency delegation."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    agency_id: str
    linked_by: str
    verified_at: datetime
    created_at: Optional[datetime] = None
