"""
Database configuration and session management for the Inventory service.

This module sets up the database connection using SQLAlchemy and provides
a session factory for database operations.

Quantity changes rely on pessimistic row locks (SELECT ... FOR UPDATE).
PostgreSQL provides them natively. SQLite has no row locks, so SQLite
connections are configured to open every transaction with BEGIN IMMEDIATE,
which serialises writers for the whole database file.
"""
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import DATABASE_URL, LOCK_TIMEOUT_MS, SQLITE_BUSY_TIMEOUT


def make_engine(url: str, **kwargs) -> Engine:
    """
    Create a SQLAlchemy engine configured for the locking protocol.

    Args:
        url: Database URL
        **kwargs: Extra keyword arguments passed to create_engine

    Returns:
        Engine: configured SQLAlchemy engine
    """
    if not url.startswith("sqlite"):
        return create_engine(url, **kwargs)

    connect_args = kwargs.pop("connect_args", {})
    connect_args.setdefault("check_same_thread", False)
    connect_args.setdefault("timeout", SQLITE_BUSY_TIMEOUT)
    sqlite_engine = create_engine(url, connect_args=connect_args, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Take transaction control away from pysqlite so BEGIN is ours
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


def set_lock_timeout(db: Session) -> None:
    """
    Bound row-lock waits for the current transaction.

    Only PostgreSQL needs this; SQLite waits are bounded by its busy timeout.

    Args:
        db: Database session with an open transaction
    """
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = '{int(LOCK_TIMEOUT_MS)}ms'"))


engine       = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base         = declarative_base()

def get_db():
    """
    Dependency function that provides a database session.

    Yields:
        Session: SQLAlchemy database session

    Usage:
        Use as a FastAPI dependency to inject database sessions into route handlers.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
