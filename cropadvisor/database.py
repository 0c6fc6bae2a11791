"""
SQLAlchemy engine and session factory.
"""
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def create_db_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args, future=True)


def init_db(database_url: Optional[str] = None) -> Engine:
    """Create the engine, the session factory and all tables."""
    global _engine, _SessionLocal
    if database_url is None:
        from cropadvisor.core.config import get_settings
        database_url = get_settings().database_url

    # Registers the tables on Base.metadata
    from cropadvisor.models import database_models  # noqa: F401

    _engine = create_db_engine(database_url)
    _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=_engine)
    return _engine


def get_db() -> Iterator[Session]:
    """Yield a session and always close it."""
    if _SessionLocal is None:
        init_db()
    db = _SessionLocal()
    try:
        yield db
    finally:
        db.close()
