import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from atsscanner.db.base import Base


class MembershipType(enum.IntEnum):
    """Plan tiers. Values match the numeric plan type exposed to clients."""
    FREE = 0
    BASIC = 1
    PREMIUM = 2
    ENTERPRISE = 3


class Membership(Base):
    """
    A user's paid-plan state, synchronized from Stripe.

    One row per user. Rows are never deleted; ``is_active = False`` marks
    termination and the row is kept for history.
    """
    __tablename__ = "memberships"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    type = Column(SQLEnum(MembershipType), default=MembershipType.FREE, nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)

    stripe_subscription_id = Column(String, nullable=True, index=True)
    stripe_price_id = Column(String, nullable=True)

    # Provider timestamp of the last webhook event applied to this row
    last_event_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="membership")

    def is_current(self, now: Optional[datetime] = None) -> bool:
        """
        Active and not past its end date.

        An active row whose end date has passed is stale and reads as inactive
        even before anything writes ``is_active = False``.
        """
        if not self.is_active:
            return False
        if self.end_date is None:
            return True
        return self.end_date > (now or datetime.utcnow())
