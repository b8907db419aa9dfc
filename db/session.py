from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from config import DATABASE_URL
from db.models import Base
from db.store import GtfsStore

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create all tables if they don't exist."""
    Base.metadata.create_all(bind=engine)


def get_store() -> Iterator[GtfsStore]:
    """Dependency-injectable keyed store, one session per request."""
    session = SessionLocal()
    try:
        yield GtfsStore(session)
    finally:
        session.close()
