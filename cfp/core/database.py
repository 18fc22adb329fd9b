"""Database configuration and session management"""

from contextlib import contextmanager
from sqlalchemy import create_engine, text, inspect
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator, Iterator
from cfp.config import settings
import logging

logger = logging.getLogger(__name__)

_database_url = settings.get_database_url()

if _database_url.startswith("sqlite"):
    engine = create_engine(
        _database_url,
        connect_args={"check_same_thread": False},
        echo=settings.DEBUG
    )
else:
    engine = create_engine(
        _database_url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=settings.DEBUG
    )

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create base class for models
Base = declarative_base()

# Import models after Base is defined so metadata is populated.
from cfp import models  # noqa: E402,F401


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session

    Yields:
        Session: Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# SQLSTATE 40001 is serialization_failure on PostgreSQL
_SERIALIZATION_FAILURE_CODES = {"40001", "40P01"}


def is_serialization_failure(exc: DBAPIError) -> bool:
    code = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
    if code in _SERIALIZATION_FAILURE_CODES:
        return True
    return "could not serialize access" in str(exc.orig).lower()


@contextmanager
def serializable(db: Session) -> Iterator[Session]:
    """
    Run the enclosed unit of work in a SERIALIZABLE transaction.

    The isolation level can only be chosen before the session touches the
    database, so any pending transaction is rolled back first. Commits on
    success, rolls back on any error. Serialization failures are re-raised as
    ConcurrentModificationError so the API answers 409.
    """
    from cfp.core.exceptions import ConcurrentModificationError

    if db.in_transaction():
        db.rollback()
    db.connection(execution_options={"isolation_level": "SERIALIZABLE"})
    try:
        yield db
        db.commit()
    except DBAPIError as exc:
        db.rollback()
        if is_serialization_failure(exc):
            logger.warning("Serializable transaction conflict: %s", exc.orig)
            raise ConcurrentModificationError("Conflicting request in progress. Please try again.")
        raise
    except Exception:
        db.rollback()
        raise


def init_db() -> None:
    """
    Initialize database according to configured strategy.

    DB_INIT_MODE:
      - migrate: require alembic_version table (migration-first discipline)
      - create_all: legacy behavior for local/dev bootstrap
      - off: skip initialization check
    """
    mode = settings.DB_INIT_MODE.lower().strip()
    if mode == "off":
        logger.info("DB initialization check skipped (DB_INIT_MODE=off)")
        return

    if mode == "create_all":
        Base.metadata.create_all(bind=engine)
        logger.warning("Using create_all database initialization (recommended only for local development).")
        return

    if mode == "migrate":
        with engine.connect() as conn:
            if engine.dialect.name == "postgresql":
                version_table_exists = conn.execute(
                    text("SELECT to_regclass('public.alembic_version')")
                ).scalar()
                exists = bool(version_table_exists)
            else:
                exists = "alembic_version" in inspect(conn).get_table_names()
            if settings.DB_REQUIRE_HEAD and not exists:
                raise RuntimeError(
                    "Migration table missing. Run Alembic migrations before starting the API."
                )
        logger.info("Migration metadata detected.")
        return

    raise RuntimeError(f"Unknown DB_INIT_MODE: {settings.DB_INIT_MODE}")
