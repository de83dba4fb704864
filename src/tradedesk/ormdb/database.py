"""Database configuration and session management."""

from typing import Any, Dict, Optional

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config.logging import get_logger
from ..config.settings import get_settings

logger = get_logger(__name__)

# Base class for all ORM models
Base = declarative_base()

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def _configure_sqlite(dbapi_connection, connection_record):
    """Configure SQLite for concurrent writers and enforced foreign keys."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=30000")
    finally:
        cursor.close()


def build_engine(database_url: str, echo: bool = False, **overrides: Any) -> Engine:
    """
    Create an engine for ``database_url`` with per-backend pool settings.

    Args:
        database_url: SQLAlchemy URL
        echo: Log emitted SQL
        **overrides: Extra keyword arguments for ``create_engine``
    """
    engine_kwargs: Dict[str, Any] = {"echo": echo}
    is_sqlite = database_url.startswith("sqlite")

    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            # One shared connection, otherwise every session sees an empty db
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs.update({"pool_size": 5, "max_overflow": 10})

    engine_kwargs.update(overrides)
    engine = create_engine(database_url, **engine_kwargs)

    if is_sqlite:
        event.listen(engine, "connect", _configure_sqlite)

    return engine


def create_engine_from_settings() -> Engine:
    """Create database engine using application settings."""
    settings = get_settings()
    database_url = settings.get_database_url()

    logger.info(
        "Creating database engine",
        url_type="sqlite" if database_url.startswith("sqlite") else "other",
        echo_sql=settings.database_echo_sql,
    )

    overrides: Dict[str, Any] = {}
    if not database_url.startswith("sqlite"):
        overrides = {
            "pool_pre_ping": settings.database_pool_pre_ping,
            "pool_recycle": settings.database_pool_recycle,
        }

    return build_engine(database_url, echo=settings.database_echo_sql, **overrides)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory whose objects stay readable after commit."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
    )


def get_engine() -> Engine:
    """Get the database engine, creating it if necessary."""
    global _engine

    if _engine is None:
        _engine = create_engine_from_settings()
        logger.info("Database engine initialized")

    return _engine


def get_session_factory() -> sessionmaker:
    """Get the session factory, creating it if necessary."""
    global _SessionLocal

    if _SessionLocal is None:
        _SessionLocal = create_session_factory(get_engine())
        logger.debug("Session factory created")

    return _SessionLocal


def create_tables(engine: Optional[Engine] = None) -> None:
    """Create all database tables."""
    # Register models on Base.metadata
    from . import models  # noqa: F401

    engine = engine or get_engine()
    logger.info("Creating database tables")
    Base.metadata.create_all(bind=engine)


def drop_tables(engine: Optional[Engine] = None) -> None:
    """Drop all database tables."""
    from . import models  # noqa: F401

    engine = engine or get_engine()
    logger.warning("Dropping all database tables")
    Base.metadata.drop_all(bind=engine)


def reset_database(engine: Optional[Engine] = None) -> None:
    """Reset database by dropping and recreating all tables."""
    logger.warning("Resetting database - dropping and recreating all tables")
    drop_tables(engine)
    create_tables(engine)


def check_database_health(session_factory: Optional[sessionmaker] = None) -> dict:
    """
    Check database connectivity and return health information.

    Returns:
        dict: Database health status
    """
    factory = session_factory or get_session_factory()
    session = factory()

    try:
        health_check = session.execute(text("SELECT 1 as health_check")).scalar()
        return {"status": "healthy", "connectivity": health_check == 1}
    except Exception as e:
        logger.error("Database health check failed", error=str(e), exc_info=True)
        return {"status": "unhealthy", "error": str(e), "connectivity": False}
    finally:
        session.close()
