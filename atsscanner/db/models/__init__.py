"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.
"""
from atsscanner.db.models.user import User
from atsscanner.db.models.membership import Membership, MembershipType
from atsscanner.db.models.membership_plan import MembershipPlan
from atsscanner.db.models.usage import UsageTracking
from atsscanner.db.models.user_profile import UserProfile
from atsscanner.db.models.login_history import LoginHistory

__all__ = [
    "User",
    "Membership",
    "MembershipType",
    "MembershipPlan",
    "UsageTracking",
    "UserProfile",
    "LoginHistory",
]
