"""
vault/store.py -- Encrypted credential storage (the Credential Vault).

Pattern: Repository + Data Mapper (same as auth/store.py).
CredentialVault is the repository; _row_to_record is the mapper.

Invariants:
  At most one record per user -- UNIQUE(user_id) in core/db.py.

  save() is a single INSERT ... ON CONFLICT(user_id) DO UPDATE statement that
  writes ciphertext, iv and updated_at together. A concurrent reader sees the
  whole old row or the whole new row, never a ciphertext from one write with
  the IV of another.

  get() distinguishes "no record" (returns None) from "record exists but does
  not decrypt" (raises StorageError). Callers must never treat the latter as
  absence -- doing so would silently fall back to the server key.

Layer rule: no imports from api/, auth/, gateway/, or practice/.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.db import credentials, now_iso
from core.errors import DecryptionError, StorageError
from vault.cipher import CredentialCipher
from vault.models import CredentialRecord

logger = logging.getLogger("languagebot.vault")


class CredentialVault:
    """Repository for per-user encrypted API keys.

    Usage:
        vault = CredentialVault(engine, CredentialCipher(settings.encryption_key))
        vault.save(user_id, "sk-...")
        vault.get(user_id)      # "sk-..." or None
        vault.delete(user_id)
    """

    def __init__(self, engine: Engine, cipher: CredentialCipher) -> None:
        self.engine = engine
        self.cipher = cipher

    def save(self, user_id: int, plaintext_key: str) -> None:
        """Encrypt plaintext_key and upsert the user's single record."""
        ciphertext, iv = self.cipher.encrypt(plaintext_key)
        now = now_iso()
        stmt = sqlite_insert(credentials).values(
            user_id=user_id,
            ciphertext=ciphertext,
            iv=iv,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[credentials.c.user_id],
            set_={
                "ciphertext": stmt.excluded.ciphertext,
                "iv": stmt.excluded.iv,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Credential save failed for user %s: %s", user_id, type(exc).__name__)
            raise StorageError("Could not save API key.") from exc
        logger.info("Credential stored for user %s", user_id)

    def get_record(self, user_id: int) -> CredentialRecord | None:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(select(credentials).where(credentials.c.user_id == user_id)).fetchone()
        except SQLAlchemyError as exc:
            logger.error("Credential read failed for user %s: %s", user_id, type(exc).__name__)
            raise StorageError() from exc
        return _row_to_record(row) if row is not None else None

    def get(self, user_id: int) -> str | None:
        """Return the decrypted key, or None when the user has no record.

        Raises StorageError when a record exists but cannot be decrypted
        (wrong ENCRYPTION_KEY, corrupted row).
        """
        record = self.get_record(user_id)
        if record is None:
            return None
        try:
            return self.cipher.decrypt(record.ciphertext, record.iv)
        except DecryptionError as exc:
            hint = " (ENCRYPTION_KEY is ephemeral; was the server restarted?)" if self.cipher.ephemeral else ""
            logger.error("Credential for user %s failed to decrypt: %s%s", user_id, exc, hint)
            raise StorageError() from None

    def has_credential(self, user_id: int) -> bool:
        """Return True if the user has a stored record. Does not decrypt."""
        return self.get_record(user_id) is not None

    def delete(self, user_id: int) -> None:
        """Remove the user's record. No-op when none exists."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(credentials.delete().where(credentials.c.user_id == user_id))
        except SQLAlchemyError as exc:
            logger.error("Credential delete failed for user %s: %s", user_id, type(exc).__name__)
            raise StorageError("Could not delete API key.") from exc
        if result.rowcount:
            logger.info("Credential deleted for user %s", user_id)


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_record(row) -> CredentialRecord:
    return CredentialRecord(
        id=row.id,
        user_id=row.user_id,
        ciphertext=row.ciphertext,
        iv=row.iv,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
