"""SQLite-backed persistence for roles and users.

Each user row embeds its task list as a JSON array, so every task operation is
a read-modify-write of a single row.
"""
from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from passlib.context import CryptContext

from .errors import ConflictError, InternalError, NotFoundError
from .models import Role, Task, User


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "taskboard.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _normalise_email(email: str) -> str:
    return email.strip().lower()


_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


def new_task(name: str) -> Task:
    """Build a fresh, not yet completed task with a generated identifier."""

    return Task(id=uuid.uuid4().hex, name=name, is_completed=False, created_at=_current_timestamp())


def _serialize_tasks(tasks: List[Task]) -> str:
    return json.dumps(
        [
            {
                "id": task.id,
                "name": task.name,
                "isCompleted": task.is_completed,
                "createdAt": _serialize_datetime(task.created_at) if task.created_at else None,
            }
            for task in tasks
        ]
    )


def _parse_tasks(raw: Optional[str]) -> List[Task]:
    if not raw:
        return []
    try:
        entries = json.loads(raw)
        tasks: List[Task] = []
        for entry in entries:
            created = entry.get("createdAt")
            tasks.append(
                Task(
                    # Entries written before ids existed get one on their next write.
                    id=str(entry.get("id") or uuid.uuid4().hex),
                    name=str(entry["name"]),
                    is_completed=bool(entry.get("isCompleted", False)),
                    created_at=_parse_datetime(created) if created else None,
                )
            )
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        raise InternalError("Stored task list is unreadable") from exc
    return tasks


_USER_SELECT = """
    SELECT u.*, r.name AS role_name, r.rank AS role_rank
      FROM users AS u
      LEFT JOIN roles AS r ON r.id = u.role_id
"""


class Database:
    """Simple wrapper around SQLite for persisting roles and users.

    A single instance is created at process start and handed to every
    component that needs it; each call opens its own short-lived connection.
    """

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS roles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    rank INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role_id INTEGER REFERENCES roles(id) ON DELETE SET NULL,
                    tasks TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_users_role_id ON users(role_id);
                """
            )

    # ------------------------------------------------------------------
    # Role management
    # ------------------------------------------------------------------
    def create_role(self, name: str, rank: int) -> Role:
        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO roles (name, rank) VALUES (?, ?)",
                    (name, int(rank)),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError(f"A role named '{name}' already exists") from exc
            role_id = cursor.lastrowid
        return Role(id=int(role_id), name=name, rank=int(rank))

    def upsert_role(self, name: str, rank: int) -> Role:
        """Insert a role or update the rank of the existing role with that name."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO roles (name, rank) VALUES (?, ?)
                ON CONFLICT(name) DO UPDATE SET rank = excluded.rank
                """,
                (name, int(rank)),
            )
            row = conn.execute("SELECT * FROM roles WHERE name = ?", (name,)).fetchone()
        return self._row_to_role(row)

    def get_role(self, role_id: int) -> Optional[Role]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM roles WHERE id = ?", (role_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_role(row)

    def get_role_by_name(self, name: str) -> Optional[Role]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM roles WHERE name = ?", (name,)).fetchone()
        if row is None:
            return None
        return self._row_to_role(row)

    def list_roles(self) -> List[Role]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM roles ORDER BY rank, name").fetchall()
        return [self._row_to_role(row) for row in rows]

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, name: str, email: str, password: str, role_id: int) -> User:
        """Create a new user holding ``role_id`` with an empty task list."""

        if not password:
            raise ValueError("Password must not be empty")

        created_at = _current_timestamp()
        normalized_email = _normalise_email(email)
        password_hash = _hash_password(password)

        with self._connect() as conn:
            role_row = conn.execute("SELECT id FROM roles WHERE id = ?", (role_id,)).fetchone()
            if role_row is None:
                raise NotFoundError("Role does not exist")
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (name, email, password_hash, role_id, tasks, created_at)
                    VALUES (?, ?, ?, ?, '[]', ?)
                    """,
                    (
                        name,
                        normalized_email,
                        password_hash,
                        role_id,
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError("A user with that email already exists") from exc
            user_id = cursor.lastrowid

        user = self.get_user(int(user_id))
        if user is None:
            raise RuntimeError("Failed to load user after creation")
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(f"{_USER_SELECT} WHERE u.id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                f"{_USER_SELECT} WHERE u.email = ?",
                (_normalise_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_users(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute(f"{_USER_SELECT} ORDER BY u.id").fetchall()
        return [self._row_to_user(row) for row in rows]

    def verify_user_password(self, user_id: int, password: str) -> bool:
        """Return ``True`` if the supplied password matches the stored hash."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT password_hash FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()

        if row is None:
            return False

        stored_hash = row["password_hash"]
        if not stored_hash:
            return False

        return _verify_password(password, stored_hash)

    def delete_user(self, user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    def modify_tasks(self, user_id: int, mutate: Callable[[User], List[Task]]) -> User:
        """Apply ``mutate`` to a user's task list inside a single transaction.

        ``mutate`` receives the freshly loaded user and returns the new task
        list. Anything it raises rolls the transaction back, leaving the row
        untouched.
        """

        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(f"{_USER_SELECT} WHERE u.id = ?", (user_id,)).fetchone()
            if row is None:
                raise NotFoundError("User not found")
            current = self._row_to_user(row)
            updated_tasks = list(mutate(current))
            conn.execute(
                "UPDATE users SET tasks = ? WHERE id = ?",
                (_serialize_tasks(updated_tasks), user_id),
            )

        refreshed = self.get_user(user_id)
        if refreshed is None:
            raise NotFoundError("User not found")
        return refreshed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_role(self, row: sqlite3.Row) -> Role:
        return Role(id=int(row["id"]), name=str(row["name"]), rank=int(row["rank"]))

    def _row_to_user(self, row: sqlite3.Row) -> User:
        role: Optional[Role] = None
        if row["role_id"] is not None and row["role_name"] is not None:
            role = Role(
                id=int(row["role_id"]),
                name=str(row["role_name"]),
                rank=int(row["role_rank"]),
            )
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            role=role,
            tasks=tuple(_parse_tasks(row["tasks"])),
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = ["Database", "new_task", "resolve_database_path"]
