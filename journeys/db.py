from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from journeys.auth import ADMIN_ROLE, hash_password
from journeys.config import settings
from journeys.models import Base, User

log = logging.getLogger(__name__)

_lock = threading.Lock()
_engine = None
_SessionLocal = None


def init_db(db_path: str | Path | None = None) -> None:
    global _engine, _SessionLocal
    with _lock:
        if _engine is not None:
            _engine.dispose()
        db_path = Path(db_path or settings.DATABASE_PATH)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        _engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
        Base.metadata.create_all(_engine)
        _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
    _seed_admin(_SessionLocal, settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD)


def get_session() -> Session:
    with _lock:
        if _SessionLocal is None:
            raise RuntimeError("init_db() has not been called")
        factory = _SessionLocal
    return factory()  # type: ignore[misc]


@contextmanager
def session_scope(factory=None) -> Generator[Session, None, None]:
    """Context manager providing a transactional session scope.

    Usage (local store, scripts, etc.)::

        with session_scope() as session:
            ...
    """
    session = factory() if factory is not None else get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _seed_admin(factory, email: str | None, password: str | None) -> None:
    """Create the configured admin user if it does not exist yet."""
    if not email or not password:
        return
    email = email.strip().lower()
    with session_scope(factory) as session:
        exists = session.execute(select(User.id).where(User.email == email)).first()
        if exists:
            return
        session.add(User(email=email, password_hash=hash_password(password), role=ADMIN_ROLE))
        session.commit()
        log.info("Seeded admin user %s", email)
