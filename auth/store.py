"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
Route and session code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(subject_id) is enforced by the schema (core/db.py). upsert_identity()
  relies on it: two concurrent first logins for the same subject converge on
  one row instead of creating duplicates.

Layer rule: no imports from api/, vault/, gateway/, or practice/.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine

from auth.models import Identity, User
from core.db import now_iso, users

logger = logging.getLogger("languagebot.auth.store")


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(engine)
        user = store.upsert_identity(Identity("sub-42", "a@example.com", "Ada"))
        store.get_by_id(user.id)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def upsert_identity(self, identity: Identity) -> User:
        """Create the user for identity.subject_id, or refresh email/name.

        created_at and id are only set on the first insert; later logins
        update email and name in place.
        """
        stmt = sqlite_insert(users).values(
            subject_id=identity.subject_id,
            email=identity.email,
            name=identity.name,
            created_at=now_iso(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[users.c.subject_id],
            set_={"email": stmt.excluded.email, "name": stmt.excluded.name},
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)
            row = conn.execute(select(users).where(users.c.subject_id == identity.subject_id)).fetchone()
        return _row_to_user(row)

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(select(users).where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_subject(self, subject_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(users).where(users.c.subject_id == subject_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user. Returns True if deleted, False if not found.

        Administrative operation -- no HTTP route calls it. The user's
        credential and conversation settings rows go with it (ON DELETE CASCADE).
        """
        with self.engine.begin() as conn:
            result = conn.execute(users.delete().where(users.c.id == user_id))
        if result.rowcount:
            logger.info("Deleted user %s", user_id)
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        subject_id=row.subject_id,
        email=row.email,
        name=row.name,
        created_at=row.created_at,
    )
