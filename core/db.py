"""
core/db.py -- SQLAlchemy Core schema and engine factory.

All durable state lives in one SQLite database so the credential and settings
rows can cascade from their owning user:

  users                  -- identity records, keyed by the provider subject
  credentials            -- one encrypted upstream API key per user
  conversation_settings  -- one practice settings row per user

Stores (auth/store.py, vault/store.py, practice/store.py) receive the Engine
built here and never open their own.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("subject_id", String(255), nullable=False, unique=True),  # provider "sub" claim
    Column("email", String(320), nullable=False),
    Column("name", Text),
    Column("created_at", String(32), nullable=False),
)

credentials = Table(
    "credentials",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("ciphertext", Text, nullable=False),  # hex
    Column("iv", String(32), nullable=False),  # hex, 16 bytes
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

conversation_settings = Table(
    "conversation_settings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("words_input", Text),
    Column("exam_description", Text),
    Column("language", String(64)),
    Column("level", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Connection pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journaling and foreign keys on every new connection.

    SQLite PRAGMAs are per-connection, so they must be set in a connect
    listener rather than once at startup. foreign_keys=ON is what makes the
    ON DELETE CASCADE clauses above take effect.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Build an Engine for db_url and create any missing tables.

    Only SQLite URLs are accepted: the stores upsert with SQLite's
    ON CONFLICT dialect. Anything else raises ValueError.
    """
    if not db_url.startswith("sqlite"):
        raise ValueError(f"DATABASE_URL must be a sqlite URL, got scheme {db_url.split(':', 1)[0]!r}")
    # Route handlers run on the threadpool; timeout is SQLite's busy wait.
    connect_args = {"check_same_thread": False, "timeout": 30}
    engine = create_engine(db_url, connect_args=connect_args)
    event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
