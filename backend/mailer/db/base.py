"""Database base configuration."""
import os
from datetime import datetime, timezone
from sqlalchemy import create_engine, event, Column, DateTime
from sqlalchemy.orm import DeclarativeBase, declared_attr, sessionmaker

from mailer.core.config import settings


def utcnow() -> datetime:
    """Naive UTC timestamp, the storage convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models."""

    @declared_attr
    def __tablename__(cls) -> str:
        """Generate table name from class name."""
        return cls.__name__.lower()

    # Common columns for all tables
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # recipients and campaign_images rely on ON DELETE CASCADE
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, **kwargs):
    """Create an engine for ``url`` with the per-dialect options this app relies on."""
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        db_engine = create_engine(url, connect_args=connect_args, echo=False, **kwargs)
        event.listen(db_engine, "connect", _enable_sqlite_foreign_keys)
        return db_engine
    return create_engine(url, pool_pre_ping=True, pool_recycle=300, echo=False, **kwargs)


# Create engine and session
engine = build_engine(settings.SQLALCHEMY_DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    """Create all tables. Called once at startup, before serving traffic."""
    import mailer.db.models  # noqa: F401  registers every model on Base.metadata

    target = bind or engine
    if target.url.get_backend_name() == "sqlite" and target.url.database not in (None, "", ":memory:"):
        directory = os.path.dirname(target.url.database)
        if directory:
            os.makedirs(directory, exist_ok=True)
    Base.metadata.create_all(bind=target)
