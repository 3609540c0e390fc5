# collabhub/db.py
# Database abstraction layer supporting PostgreSQL (production) and SQLite (dev)

from contextlib import contextmanager
from pathlib import Path as FsPath
from typing import Any, Dict, Generator, Optional, Union
from urllib.parse import urlparse

from sqlalchemy import create_engine, event, pool, text
from sqlalchemy.engine import Connection, Engine, Result

from collabhub.config import DATABASE_PATH, DATABASE_URL

# Global engine, created lazily by init_engine()
_engine: Union[Engine, None] = None


def default_database_url() -> str:
    """DATABASE_URL if set, otherwise a SQLite file next to this package."""
    if DATABASE_URL:
        # SQLAlchemy only understands the postgresql:// scheme
        if DATABASE_URL.startswith("postgres://"):
            return "postgresql://" + DATABASE_URL[len("postgres://"):]
        return DATABASE_URL
    db_path = FsPath(DATABASE_PATH)
    if not db_path.is_absolute():
        db_path = FsPath(__file__).resolve().parent / db_path
    return f"sqlite:///{db_path}"


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record) -> None:
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def init_engine(url: Optional[str] = None) -> Engine:
    """
    Initialize (or replace) the global SQLAlchemy engine.

    Tests call this with a temporary SQLite URL to get an isolated database.
    """
    global _engine

    url = url or default_database_url()
    parsed = urlparse(url)
    if not parsed.scheme:
        raise ValueError(f"Invalid DATABASE_URL: {url[:20]}...")

    if _engine is not None:
        _engine.dispose()

    if parsed.scheme.startswith("sqlite"):
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
        print(f"[DB] Using SQLite ({parsed.path})")
    else:
        # Create engine with connection pooling
        _engine = create_engine(
            url,
            poolclass=pool.QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,  # Verify connections before use
            echo=False,
        )
        print(f"[DB] Using PostgreSQL ({parsed.hostname})")

    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


def is_postgres() -> bool:
    return get_engine().dialect.name == "postgresql"


@contextmanager
def get_db_connection() -> Generator[Connection, None, None]:
    """
    Context manager yielding a connection inside one transaction.

    Commits when the block exits normally, rolls back when it raises.
    Every membership mutation runs inside exactly one of these blocks.
    """
    with get_engine().begin() as conn:
        yield conn


def execute_query(
    conn: Connection,
    query: str,
    params: Optional[Dict[str, Any]] = None,
) -> Result:
    """
    Execute a query with named parameters (:name style).

    Args:
        conn: Database connection
        query: SQL query using :param placeholders
        params: Query parameters

    Returns:
        SQLAlchemy Result
    """
    return conn.execute(text(query), params or {})
