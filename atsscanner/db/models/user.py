from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from atsscanner.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)

    # Free-tier metering; not incremented while a paid membership is active
    scan_count = Column(Integer, default=0, nullable=False)
    last_scan_date = Column(DateTime, nullable=True)

    stripe_customer_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now())

    membership = relationship(
        "Membership",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    profile = relationship(
        "UserProfile",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
