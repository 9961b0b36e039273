from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from atsscanner.core.config import get_settings

_engine: Optional[Engine] = None

SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def get_engine() -> Engine:
    """Create the engine on first use from the configured DATABASE_URL."""
    global _engine
    if _engine is None:
        database_url = get_settings().DATABASE_URL
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        _engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)
        SessionLocal.configure(bind=_engine)
    return _engine


def get_db():
    """Database session dependency."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
