"""
vault/models.py -- Domain dataclass for stored credentials.

Pure data container. The plaintext key is never a field: a CredentialRecord
only ever holds the hex ciphertext and the IV it was produced with.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class CredentialRecord:
    """The encrypted upstream API key belonging to one user.

    ciphertext and iv are always written together; a ciphertext paired with
    an IV from a different write cannot be decrypted.
    """

    user_id: int
    ciphertext: str  # hex
    iv: str  # hex
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
