"""Engine and session wiring.

Production points ``DATABASE_URL`` at the managed Postgres instance, whose
schema lives in ``supabase/migrations``. Local runs and tests use a SQLite
file and build the tables from the models instead.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from settings import get_settings

SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout = 5000",
    "PRAGMA foreign_keys=ON",
)


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _apply_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    try:
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()


def build_engine(url: str) -> Engine:
    if not is_sqlite(url):
        # Managed Postgres drops idle connections
        return create_engine(url, pool_pre_ping=True, pool_recycle=300)

    sqlite_engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": 15},
        pool_pre_ping=True,
    )
    event.listen(sqlite_engine, "connect", _apply_sqlite_pragmas)
    return sqlite_engine


engine = build_engine(get_settings().database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def create_db_and_tables():
    """Create missing tables; a no-op against a migrated Postgres schema."""
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
