"""Database session dependencies."""
from typing import Callable, Generator
from sqlalchemy.orm import Session
from mailer.db.base import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    """Session factory for long-lived responses that open short sessions per poll."""
    return SessionLocal
