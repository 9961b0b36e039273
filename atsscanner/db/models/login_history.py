from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from atsscanner.db.base import Base


class LoginHistory(Base):
    """
    One row per password login attempt against an existing account.

    Attempts for unknown emails have no user to attach to and are only logged.
    """
    __tablename__ = "login_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    login_time = Column(DateTime, nullable=False, index=True)
    ip_address = Column(String(45), nullable=False)
    user_agent = Column(String(255), nullable=True)
    is_successful = Column(Boolean, nullable=False)
