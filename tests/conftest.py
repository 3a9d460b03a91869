from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from taskboard.database import Database
from taskboard.models import Role, User

PASSWORD = "correct-horse-battery"


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "taskboard.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def manager_role(database: Database) -> Role:
    return database.create_role("Manager", 1)


@pytest.fixture()
def worker_role(database: Database) -> Role:
    return database.create_role("Worker", 2)


@pytest.fixture()
def manager(database: Database, manager_role: Role) -> User:
    return database.create_user("Alice Manager", "alice@example.com", PASSWORD, manager_role.id)


@pytest.fixture()
def worker(database: Database, worker_role: Role) -> User:
    return database.create_user("Bob Worker", "bob@example.com", PASSWORD, worker_role.id)
