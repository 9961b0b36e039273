"""
Pydantic schemas for payment and membership endpoints.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from atsscanner.db.models.membership import MembershipType


class MembershipPlanResponse(BaseModel):
    """A purchasable plan."""
    id: int
    name: str
    type: MembershipType
    price: Decimal = Field(..., description="Monthly price in USD")
    scan_limit: int = Field(..., description="-1 for unlimited")
    is_active: bool
    stripe_price_id: Optional[str] = None
    has_priority_support: bool
    has_advanced_analytics: bool
    has_bulk_upload: bool

    model_config = ConfigDict(from_attributes=True)


class PlanRequest(BaseModel):
    """Request schema for payment intent and subscription creation."""
    plan_id: int = Field(..., description="Membership plan ID")

    model_config = ConfigDict(json_schema_extra={"example": {"plan_id": 2}})


class ConfirmPaymentRequest(BaseModel):
    """Request schema for confirming a one-time payment."""
    plan_id: int = Field(..., description="Membership plan ID")
    payment_intent_id: Optional[str] = Field(None, description="Stripe payment intent ID")


class PaymentIntentResponse(BaseModel):
    client_secret: str = Field(..., description="Client secret for Stripe.js")
    payment_intent_id: str
    plan_id: int
    amount: Decimal


class SubscriptionResponse(BaseModel):
    subscription_id: str
    membership_id: int
    status: str


class ConfirmPaymentResponse(BaseModel):
    membership_id: int
    message: str = "Payment confirmed and membership activated"


class MembershipStatusResponse(BaseModel):
    """Response schema for GET /payment/subscription-status."""
    user_id: int
    scan_count: int
    last_scan_date: Optional[datetime] = None
    has_active_membership: bool
    membership_type: MembershipType
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    remaining_scans: int = Field(..., description="-1 for unlimited")


class PaymentMethodResponse(BaseModel):
    id: str
    brand: str
    last4: str
    exp_month: int
    exp_year: int


class PaymentMethodsResponse(BaseModel):
    payment_methods: List[PaymentMethodResponse]


class MessageResponse(BaseModel):
    message: str
