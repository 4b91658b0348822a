from typing import Any, Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from cleanouts.core.config import settings


def engine_options(url: str) -> Dict[str, Any]:
    """
    Keyword arguments for ``create_engine`` by backend.

    SQLite connections are shared across the request threadpool, and an
    in-memory database must keep a single connection or every session sees
    an empty schema. Server databases get a bounded, pre-pinged pool.
    """
    parsed = make_url(url)
    options: Dict[str, Any] = {"echo": settings.SQL_ECHO}
    if parsed.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        return options

    options.update(
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )
    return options


engine = create_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Iterator[Session]:
    """One session per request, closed when the response is done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
