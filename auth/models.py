"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the session
authenticator do the work.

Layer rule: no imports from api/, vault/, gateway/, or practice/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A person who has signed in at least once.

    subject_id is the identity provider's stable "sub" claim. It is the only
    key used to find an existing user on later logins; email and name are
    refreshed from the token every time.
    """

    subject_id: str
    email: str
    name: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """Claims extracted from a verified identity token."""

    subject_id: str
    email: str
    name: str
