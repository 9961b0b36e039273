from sqlalchemy import Boolean, Column, DateTime, Enum as SQLEnum, Integer, Numeric, String
from sqlalchemy.sql import func
from atsscanner.db.base import Base
from atsscanner.db.models.membership import MembershipType


class MembershipPlan(Base):
    """Purchasable plan. Seeded once from the plan catalog; read-only at runtime."""
    __tablename__ = "membership_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    type = Column(SQLEnum(MembershipType), unique=True, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)  # monthly, USD
    scan_limit = Column(Integer, nullable=False)  # -1 for unlimited
    is_active = Column(Boolean, default=True, nullable=False)  # for sale

    stripe_price_id = Column(String, nullable=True)

    has_priority_support = Column(Boolean, default=False, nullable=False)
    has_advanced_analytics = Column(Boolean, default=False, nullable=False)
    has_bulk_upload = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
