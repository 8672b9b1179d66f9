from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker

from ficai_signals.config import get_settings

# SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"

# Session factory for database operations, bound per call in get_db
SessionLocal = sessionmaker(autocommit=False, autoflush=False)

# Base class for all models
Base = declarative_base()


@lru_cache
def get_engine():
    """
    Engine shared by every request. The pool is the only shared mutable
    resource in the process.
    """
    settings = get_settings()
    return create_engine(
        settings.database_url,
        connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
        pool_pre_ping=True,
        echo=settings.debug
    )


def get_db():
    """
    Dependency that provides database session to route handlers.
    Ensures session is properly closed after request.
    """
    db = SessionLocal(bind=get_engine())
    try:
        yield db
    finally:
        db.close()


def init_db(engine=None):
    """
    Create any missing tables. Existing tables are left untouched.
    """
    # models must be imported so their tables are registered on Base
    from ficai_signals import models  # noqa: F401
    Base.metadata.create_all(bind=engine or get_engine())


def is_unique_violation(exc: IntegrityError) -> bool:
    """
    True if the store rejected a write because of a unique or primary key
    constraint, as opposed to a foreign key or not-null violation.
    """
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is not None:
        return code == UNIQUE_VIOLATION
    return "UNIQUE constraint failed" in str(orig)
