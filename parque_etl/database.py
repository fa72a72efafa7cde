"""SQLAlchemy engine, session factory and declarative ``Base``."""

from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from parque_etl.config import get_settings

_settings = get_settings()

_connect_args = (
    {"check_same_thread": False}
    if _settings.DATABASE_URL.startswith("sqlite")
    else {}
)

engine = create_engine(
    _settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args,
    echo=_settings.DEBUG,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Iterator[Session]:
    """Yield a session and always close it; roll back if the caller raised."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create every table registered on ``Base.metadata``.

    Args:
        bind: Optional engine/connection; defaults to the module engine.
    """
    import parque_etl.models  # noqa: F401  (populates the mapper registry)

    Base.metadata.create_all(bind=bind or engine)
