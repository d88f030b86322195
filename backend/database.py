"""
Database Configuration Module

This module handles the database configuration and connection setup for the
barangay health inventory. It uses SQLAlchemy for ORM (Object-Relational Mapping);
the target database is chosen by settings.DATABASE_URL.

The module includes:
- Database connection setup
- Session management
- Base model class definition
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

import settings

SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL


def _engine_kwargs(url: str) -> dict:
    """SQLite needs cross-thread access for FastAPI, and in-memory databases a single shared connection."""
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return kwargs


# Create SQLAlchemy engine
# The engine is the entry point to the SQLAlchemy ORM
engine = create_engine(SQLALCHEMY_DATABASE_URL, **_engine_kwargs(SQLALCHEMY_DATABASE_URL))

# Create SessionLocal class
# autocommit=False means we need to explicitly commit transactions
# autoflush=False means we need to explicitly flush changes to the database
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base is the declarative base class that our ORM models will inherit from
Base = declarative_base()


@event.listens_for(Engine, "connect")
def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """
    SQLite ignores FOREIGN KEY clauses unless asked per connection.

    Batch rows reference their item with ON DELETE RESTRICT, so the pragma is
    required for SQLite to honour the same rule as PostgreSQL and MySQL.
    """
    module = type(dbapi_connection).__module__
    if module.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Dependency to get database session
def get_db():
    """
    Dependency function that provides a database session.

    This function creates a new database session for each request and ensures
    that the session is properly closed after the request is completed.

    Yields:
        Session: A SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
