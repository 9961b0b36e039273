"""
Pydantic schemas for profile endpoints.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from atsscanner.db.models.membership import MembershipType


class SubscriptionSummary(BaseModel):
    plan_name: str
    type: MembershipType
    price: Decimal
    scan_limit: int = Field(..., description="-1 for unlimited")
    scans_used: int
    scans_remaining: int = Field(..., description="-1 for unlimited")
    is_active: bool
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    stripe_subscription_id: Optional[str] = None
    can_cancel: bool


class ProfileResponse(BaseModel):
    """Response schema for GET/PUT /profile."""
    user_id: int
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    bio: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    subscription: Optional[SubscriptionSummary] = None
    scan_count: int
    last_scan_date: Optional[datetime] = None


class UpdateProfileRequest(BaseModel):
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    phone_number: Optional[str] = Field(None, max_length=20)
    bio: Optional[str] = Field(None, max_length=500)
    date_of_birth: Optional[datetime] = None


class LoginHistoryEntry(BaseModel):
    id: int
    login_time: datetime
    ip_address: str
    user_agent: Optional[str] = None
    is_successful: bool

    model_config = ConfigDict(from_attributes=True)


class LoginHistoryResponse(BaseModel):
    entries: List[LoginHistoryEntry]
