from datetime import datetime

from dateutil.relativedelta import relativedelta
from sqlalchemy import Column, Integer, String, DateTime
from atsscanner.db.base import Base

RESET_PERIOD = relativedelta(months=1)


class UsageTracking(Base):
    """
    Anonymous scan usage keyed by caller IP address.

    The counter resets lazily: the next read after ``reset_date`` zeroes it
    and moves ``reset_date`` one period forward. There is no background sweep.
    """
    __tablename__ = "usage_tracking"

    id = Column(Integer, primary_key=True, index=True)
    ip_address = Column(String(45), unique=True, index=True, nullable=False)  # IPv6 max length
    scan_count = Column(Integer, default=0, nullable=False)
    first_scan_date = Column(DateTime, nullable=False)
    last_scan_date = Column(DateTime, nullable=False)
    reset_date = Column(DateTime, nullable=False)

    @staticmethod
    def next_reset_date(start: datetime = None) -> datetime:
        """One reset period after ``start`` (defaults to now, UTC)."""
        if start is None:
            start = datetime.utcnow()
        return start + RESET_PERIOD
