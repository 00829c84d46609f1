"""
UCASA — Database Session

SQLAlchemy engine, session factory, and declarative base for the
durable tracker store. SQLite by default; any SQLAlchemy URL works.
"""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.config import get_settings

settings = get_settings()


def build_engine(url: str) -> Engine:
    """Create an engine with pool options suited to the backend."""
    kwargs: Dict[str, Any] = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        # Connections are shared between the event loop and worker threads
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs.update(pool_size=5, max_overflow=10)
    return create_engine(url, **kwargs)


engine = build_engine(settings.db_url)

SessionLocal: sessionmaker[Session] = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""
    pass
