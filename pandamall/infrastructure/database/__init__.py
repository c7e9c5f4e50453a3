"""
Database initialization and session management.
"""

import logging
from collections.abc import Generator
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel

from pandamall.infrastructure.database.models import ClientStateEntry, get_engine_url
from pandamall.infrastructure.database.store import (
    MARKETPLACE_KEY,
    TRANSLATION_PREFIX,
    ClientStateStore,
    TranslationCache,
    TranslationCacheStats,
)

logger = logging.getLogger(__name__)


def make_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, echo=False)
    if url.database in (None, "", ":memory:"):
        # Một kết nối dùng chung để bảng in-memory không biến mất giữa các session
        return create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, echo=False, connect_args={"check_same_thread": False})


_engine: Engine | None = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = make_engine(get_engine_url())
    return _engine


def get_db() -> Generator[Session, None, None]:
    """Dependency - Get database session."""
    with Session(get_engine()) as session:
        yield session


def init_db(engine: Engine | None = None) -> Engine:
    """Initialize database - create all tables."""
    engine = engine or get_engine()
    SQLModel.metadata.create_all(bind=engine)
    logger.debug("Client state tables ready on %s", engine.url.render_as_string(hide_password=True))
    return engine


def open_store(database_url: str | None = None) -> ClientStateStore:
    engine = make_engine(database_url) if database_url else get_engine()
    init_db(engine)
    return ClientStateStore(engine)
