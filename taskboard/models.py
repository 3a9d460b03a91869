"""Domain models for roles, users and their embedded tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class Role:
    """A named role. Lower ``rank`` values carry more authority."""

    id: int
    name: str
    rank: int


@dataclass(frozen=True)
class Task:
    """A task entry embedded in a user's task list."""

    id: str
    name: str
    is_completed: bool = False
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the taskboard database.

    The password hash never leaves :class:`~taskboard.database.Database`, so
    instances are safe to hand to the HTTP layer.
    """

    id: int
    name: str
    email: str
    created_at: datetime
    role: Optional[Role] = None
    tasks: Tuple[Task, ...] = field(default_factory=tuple)


__all__ = ["Role", "Task", "User"]
