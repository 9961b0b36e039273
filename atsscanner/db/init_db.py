import logging

from atsscanner.core.config import get_settings
from atsscanner.core.plan_catalog import seed_membership_plans
from atsscanner.db.base import Base
from atsscanner.db.session import SessionLocal, get_engine
import atsscanner.db.models  # noqa: F401 - registers all models on Base.metadata

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create missing tables and seed the plan catalog."""
    engine = get_engine()
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        seed_membership_plans(db, get_settings())
    finally:
        db.close()

    logger.info("Database initialized")
