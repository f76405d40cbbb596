from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from tiaen.config import settings

Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _connect_args(database_url: str, timeout_seconds: float) -> dict:
    if database_url.startswith("postgresql"):
        timeout_ms = int(timeout_seconds * 1000)
        return {
            "connect_timeout": max(int(timeout_seconds), 1),
            "options": f"-c statement_timeout={timeout_ms}",
        }
    return {}


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args=_connect_args(settings.database_url, settings.store_timeout_seconds),
        )
    return _engine


def get_session_factory() -> sessionmaker:
    """Session factory, created on first use."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autocommit=False, autoflush=False)
    return _session_factory


def SessionLocal() -> Session:
    return get_session_factory()()


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """Session for work that runs outside a request (background tasks, scripts)."""
    db = (factory or get_session_factory())()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
