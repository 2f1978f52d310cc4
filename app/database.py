"""
Database engine and session for the credential table.

The table is used purely as a key-value store keyed by user id. SQLite is the
development default; any SQLAlchemy URL (e.g. Postgres) works in production.
get_db is the request-scoped dependency used by the auth router.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL

Base = declarative_base()


def build_engine(url: str = DATABASE_URL) -> Engine:
    """SQLite needs check_same_thread=False under FastAPI; an in-memory one also needs a single shared connection."""
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


engine = build_engine()
SessionLocal = sessionmaker(bind=engine)


def init_db(bind: Engine = engine) -> None:
    """Create the credential table if missing (development; production uses migrations)."""
    # Register the mapped classes on Base before create_all
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind)


def get_db():
    """FastAPI dependency: yields a DB session and closes it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
