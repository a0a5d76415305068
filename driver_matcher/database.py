"""
Database Configuration and Session Management
"""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import declarative_base, sessionmaker
from driver_matcher.config import settings
import structlog

logger = structlog.get_logger(__name__)

# Create SQLAlchemy engine
engine = None
SessionLocal = None


def init_db(database_url: Optional[str] = None):
    """
    Initialize database connection

    Args:
        database_url: Overrides settings.database_url (tests pass sqlite URLs)

    Returns:
        sessionmaker bound to the new engine, or None when no URL is configured
    """
    global engine, SessionLocal

    url = database_url or settings.database_url
    if not url:
        logger.warning("database_url_not_configured", action="database_features_disabled")
        return None

    logger.info("database_connecting")
    engine_kwargs = {"pool_pre_ping": True}  # Verify connections before using them
    if url.startswith("sqlite"):
        # One shared connection so in-memory databases are visible to job threads
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_size"] = settings.database_pool_size
        engine_kwargs["max_overflow"] = settings.database_max_overflow

    engine = create_engine(url, **engine_kwargs)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    logger.info("database_connection_established")
    return SessionLocal


def create_tables():
    """Create all tables known to Base (development and tests)."""
    if engine is None:
        raise RuntimeError("init_db() must be called before create_tables()")

    # Import models so they register with Base.metadata
    import driver_matcher.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("database_tables_created", tables=sorted(Base.metadata.tables))


# Base class for all models
Base = declarative_base()
