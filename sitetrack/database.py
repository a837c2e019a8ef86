# SiteTrack - Database Setup
# SQLAlchemy engine, session factory, and FastAPI dependencies

from typing import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from sitetrack.config import get_settings
from sitetrack.models.base import Base


# Get settings
settings = get_settings()

if settings.is_sqlite:
    # One shared connection so in-memory databases survive across sessions
    # and threads (the websocket relay records locations from a threadpool)
    engine = create_engine(
        settings.database_url,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=settings.debug,
    )
else:
    # Create engine with connection pooling
    engine = create_engine(
        settings.database_url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,  # Verify connections before using
        echo=settings.debug,  # Log SQL in debug mode
    )


# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,  # Prevent lazy-load issues after commit
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a database session.

    Usage in route handlers:

        @router.get("/sites")
        def list_sites(db: Session = Depends(get_db)):
            return db.query(WorkSite).all()

    The session is automatically closed after the request completes,
    even if an exception occurs.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI requests.

    Usage in scripts, websocket handlers, or background tasks:

        with get_db_context() as db:
            employee = db.get(Employee, employee_id)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Initialize the database schema.

    Creates all tables defined in the models.

    WARNING: This is for development/testing only.
    In production, use Alembic migrations.
    """
    import sitetrack.models  # noqa: F401  (registers every table on Base.metadata)
    Base.metadata.create_all(bind=engine)


def drop_db() -> None:
    """
    Drop all tables.

    WARNING: Destroys all data. Only for development/testing.
    """
    import sitetrack.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def check_connection() -> bool:
    """
    Test the database connection.

    Returns True if connection succeeds, raises exception otherwise.
    Useful for health checks and startup verification.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return True


if engine.dialect.name == "mssql":
    @event.listens_for(engine, "connect")
    def set_sql_server_options(dbapi_connection, connection_record):
        """
        Set connection-level options for SQL Server.

        This runs once when a new connection is created.
        """
        cursor = dbapi_connection.cursor()
        cursor.execute("SET DATEFORMAT ymd")
        cursor.close()
