"""
practice/models.py -- Domain dataclass for a user's conversation practice settings.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ConversationSettings:
    """What the user last chose to practice.

    All fields are free text chosen in the browser; the server stores them as
    given and never interprets them.
    """

    words_input: str | None = None  # vocabulary the user wants to practice
    exam_description: str | None = None  # e.g. the oral exam being prepared for
    language: str | None = None
    level: str | None = None  # e.g. "A2", "B1"
