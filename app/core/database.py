from contextlib import contextmanager
import importlib.util
import logging
from urllib.parse import urlparse

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.core.config import get_settings


class Base(DeclarativeBase):
    pass


settings = get_settings()
logger = logging.getLogger(__name__)

LOCAL_DB_HOSTS = {"localhost", "127.0.0.1", "db"}


def _resolve_database_url(database_url: str) -> str:
    # Fall back to the psycopg 3 driver when only that one is installed.
    if not database_url.startswith("postgresql://"):
        return database_url
    if importlib.util.find_spec("psycopg2") is None and importlib.util.find_spec("psycopg") is not None:
        return database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return database_url


def _connect_args(database_url: str) -> dict:
    parsed = urlparse(database_url)
    if not parsed.scheme.startswith("postgresql") or parsed.hostname in LOCAL_DB_HOSTS:
        return {}
    sslmode = (settings.db_sslmode or "").strip()
    return {"sslmode": sslmode} if sslmode else {}


def _pool_options(database_url: str) -> dict:
    if not database_url.startswith("postgresql"):
        return {}
    pool_size = max(1, int(settings.db_pool_size))
    max_overflow = max(0, int(settings.db_max_overflow))
    if (pool_size, max_overflow) != (settings.db_pool_size, settings.db_max_overflow):
        logger.warning("DB pool clamped to pool_size=%s max_overflow=%s", pool_size, max_overflow)
    return {
        "pool_pre_ping": settings.db_pool_pre_ping,
        "pool_recycle": settings.db_pool_recycle,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": int(settings.db_pool_timeout),
    }


database_url = _resolve_database_url(str(settings.database_url))

engine = create_engine(database_url, connect_args=_connect_args(database_url), **_pool_options(database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope():
    """Session for scripts and health checks outside a request."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
