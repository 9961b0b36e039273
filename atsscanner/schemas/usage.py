"""
Pydantic schemas for usage endpoints.
"""
from pydantic import BaseModel, ConfigDict, Field

from atsscanner.db.models.membership import MembershipType


class UsageStatusResponse(BaseModel):
    """Response schema for GET /resume/usage-status."""
    can_scan: bool = Field(..., description="Whether the caller may start a scan now")
    remaining_scans: int = Field(..., description="Scans left after the next one, -1 for unlimited")
    has_active_membership: bool = Field(..., description="Whether the caller holds a current paid plan")
    membership_type: MembershipType = Field(..., description="0=Free, 1=Basic, 2=Premium, 3=Enterprise")
    scan_count: int = Field(..., description="Scans counted against the free tier")
    is_first_time: bool = Field(False, description="Anonymous caller with no scans yet")
    has_registered_account: bool = Field(False, description="Whether the caller is authenticated")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "can_scan": True,
                "remaining_scans": 1,
                "has_active_membership": False,
                "membership_type": 0,
                "scan_count": 1,
                "is_first_time": False,
                "has_registered_account": False,
            }
        }
    )


class ScanPermitResponse(BaseModel):
    """Response schema for POST /resume/scan-permit."""
    can_scan: bool = Field(..., description="Always true; denials return 402")
    remaining_scans: int = Field(..., description="Scans left after this one, -1 for unlimited")
    has_paid_membership: bool = Field(False, description="Whether scans are unmetered")


class ScanLimitReachedResponse(BaseModel):
    """Error body for a 402 scan limit response."""
    detail: str = Field(..., description="Human-readable message")
    code: str = Field("SCAN_LIMIT_REACHED", description="Error code")
    remaining_scans: int = Field(0, description="Always 0")
    has_registered_account: bool = Field(..., description="Whether the caller is authenticated")
