"""
practice/store.py -- Persistence for per-user conversation settings.

One row per user (UNIQUE(user_id)); save() is an upsert that replaces every
field, so clearing a field in the browser clears it here too.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine

from core.db import conversation_settings, now_iso
from practice.models import ConversationSettings

_FIELDS = ("words_input", "exam_description", "language", "level")


class ConversationSettingsStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def save(self, user_id: int, settings: ConversationSettings) -> None:
        now = now_iso()
        values = {field: getattr(settings, field) for field in _FIELDS}
        stmt = sqlite_insert(conversation_settings).values(user_id=user_id, created_at=now, updated_at=now, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[conversation_settings.c.user_id],
            set_={**{field: stmt.excluded[field] for field in _FIELDS}, "updated_at": stmt.excluded.updated_at},
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def get(self, user_id: int) -> ConversationSettings | None:
        """Return the user's settings, or None if never saved."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(conversation_settings).where(conversation_settings.c.user_id == user_id)
            ).fetchone()
        if row is None:
            return None
        return ConversationSettings(**{field: getattr(row, field) for field in _FIELDS})
