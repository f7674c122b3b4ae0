from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class User:
    """Learner profile as far as certificates need it."""

    id: str
    display_name: str
    email: str | None = None
