"""
Plan catalog: single source of truth for plan pricing and entitlements.

Every MembershipType has exactly one entry. The catalog is seeded into the
membership_plans table once; at runtime the table is read-only.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.orm import Session

from atsscanner.core.config import Settings
from atsscanner.db.models.membership import MembershipType
from atsscanner.db.models.membership_plan import MembershipPlan

logger = logging.getLogger(__name__)

UNLIMITED = -1


@dataclass(frozen=True)
class PlanDefinition:
    name: str
    type: MembershipType
    price: Decimal
    scan_limit: int
    for_sale: bool = True
    has_priority_support: bool = False
    has_advanced_analytics: bool = False
    has_bulk_upload: bool = False

    @property
    def is_unlimited(self) -> bool:
        return self.scan_limit == UNLIMITED


PLAN_CATALOG: Dict[MembershipType, PlanDefinition] = {
    MembershipType.FREE: PlanDefinition(
        name="Free",
        type=MembershipType.FREE,
        price=Decimal("0.00"),
        scan_limit=3,
    ),
    MembershipType.BASIC: PlanDefinition(
        name="Basic",
        type=MembershipType.BASIC,
        price=Decimal("9.99"),
        scan_limit=UNLIMITED,
        has_advanced_analytics=True,
    ),
    MembershipType.PREMIUM: PlanDefinition(
        name="Premium",
        type=MembershipType.PREMIUM,
        price=Decimal("19.99"),
        scan_limit=UNLIMITED,
        has_priority_support=True,
        has_advanced_analytics=True,
        has_bulk_upload=True,
    ),
    MembershipType.ENTERPRISE: PlanDefinition(
        name="Enterprise",
        type=MembershipType.ENTERPRISE,
        price=Decimal("49.99"),
        scan_limit=UNLIMITED,
        for_sale=False,  # sold through sales, not self-serve checkout
        has_priority_support=True,
        has_advanced_analytics=True,
        has_bulk_upload=True,
    ),
}

_missing = set(MembershipType) - set(PLAN_CATALOG)
if _missing:
    raise RuntimeError(f"Plan catalog has no entry for: {sorted(m.name for m in _missing)}")

FREE_SCAN_LIMIT: int = PLAN_CATALOG[MembershipType.FREE].scan_limit


def get_plan_definition(plan_type: MembershipType) -> PlanDefinition:
    """Catalog entry for a plan type."""
    return PLAN_CATALOG[MembershipType(plan_type)]


def scan_limit_for(plan_type: MembershipType) -> int:
    """Monthly scan limit for a plan type, -1 for unlimited."""
    return get_plan_definition(plan_type).scan_limit


def stripe_price_id_for(plan_type: MembershipType, settings: Settings) -> Optional[str]:
    """Configured Stripe price ID for a plan type. The Free plan has none."""
    price_ids = {
        MembershipType.FREE: None,
        MembershipType.BASIC: settings.STRIPE_PRICE_ID_BASIC,
        MembershipType.PREMIUM: settings.STRIPE_PRICE_ID_PREMIUM,
        MembershipType.ENTERPRISE: settings.STRIPE_PRICE_ID_ENTERPRISE,
    }
    price_id = price_ids[MembershipType(plan_type)]
    if not price_id or price_id.startswith("price_your_"):
        # Unfilled placeholder such as price_your_basic_id
        return None
    return price_id


def seed_membership_plans(db: Session, settings: Settings) -> int:
    """
    Insert catalog plans that are not yet in the database.

    Existing rows are left untouched, so calling this on every startup is safe.

    Returns:
        Number of plans inserted
    """
    existing = {plan.type for plan in db.query(MembershipPlan).all()}
    inserted = 0

    for plan_type, definition in PLAN_CATALOG.items():
        if plan_type in existing:
            continue
        db.add(MembershipPlan(
            name=definition.name,
            type=plan_type,
            price=definition.price,
            scan_limit=definition.scan_limit,
            is_active=definition.for_sale,
            stripe_price_id=stripe_price_id_for(plan_type, settings),
            has_priority_support=definition.has_priority_support,
            has_advanced_analytics=definition.has_advanced_analytics,
            has_bulk_upload=definition.has_bulk_upload,
        ))
        inserted += 1

    if inserted:
        db.commit()
        logger.info(f"Seeded {inserted} membership plans")

    return inserted
