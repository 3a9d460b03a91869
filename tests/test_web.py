from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from taskboard.config import Settings
from taskboard.database import Database
from taskboard.models import User
from taskboard.service import create_web_app

from conftest import PASSWORD


@pytest.fixture()
def client(database: Database, tmp_path: Path, manager: User, worker: User):
    settings = Settings(
        database_path=database.path,
        roles_path=tmp_path / "roles.yaml",
        secure_cookies=False,
    )
    app = create_web_app(database=database, settings=settings)
    with TestClient(app) as test_client:
        yield test_client


def _login(client: TestClient, email: str = "alice@example.com") -> None:
    response = client.post(
        "/login",
        data={"email": email, "password": PASSWORD},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"].endswith("/dashboard")


def test_dashboard_requires_login(client: TestClient) -> None:
    response = client.get("/dashboard", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"].endswith("/login")


def test_login_page_renders(client: TestClient) -> None:
    response = client.get("/")
    assert response.status_code == 200
    assert "Sign in" in response.text


def test_invalid_login_shows_error(client: TestClient) -> None:
    response = client.post(
        "/login",
        data={"email": "alice@example.com", "password": "wrong"},
        follow_redirects=False,
    )
    assert response.status_code == 400
    assert "Invalid email or password" in response.text


def test_dashboard_lists_users_and_manage_controls(client: TestClient, worker: User, manager: User) -> None:
    _login(client)

    response = client.get("/dashboard")
    assert response.status_code == 200
    assert "Bob Worker" in response.text
    assert f"/dashboard/users/{worker.id}/delete" in response.text
    assert f"/dashboard/users/{manager.id}/delete" not in response.text


def test_assign_toggle_and_delete_via_forms(client: TestClient, database: Database, worker: User) -> None:
    _login(client)

    assigned = client.post(
        f"/dashboard/users/{worker.id}/tasks",
        data={"task_name": "Water the plants"},
        follow_redirects=False,
    )
    assert assigned.status_code == 303
    assert "notice=" in assigned.headers["location"]

    task = database.get_user(worker.id).tasks[0]
    assert task.name == "Water the plants"

    toggled = client.post(
        f"/dashboard/users/{worker.id}/tasks/0/toggle",
        data={"task_id": task.id},
        follow_redirects=False,
    )
    assert toggled.status_code == 303
    assert database.get_user(worker.id).tasks[0].is_completed is True

    page = client.get("/dashboard")
    assert "Water the plants" in page.text
    assert "Reopen" in page.text

    removed = client.post(
        f"/dashboard/users/{worker.id}/tasks/0/delete",
        data={"task_id": task.id},
        follow_redirects=False,
    )
    assert removed.status_code == 303
    assert database.get_user(worker.id).tasks == ()


def test_assign_from_picker(client: TestClient, database: Database, worker: User) -> None:
    _login(client)

    response = client.post(
        "/dashboard/tasks",
        data={"user_id": str(worker.id), "task_name": "File expenses"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert [task.name for task in database.get_user(worker.id).tasks] == ["File expenses"]


def test_forbidden_action_redirects_with_error(client: TestClient, database: Database, manager: User) -> None:
    _login(client, "bob@example.com")

    response = client.post(
        f"/dashboard/users/{manager.id}/delete",
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert "error=" in response.headers["location"]
    assert database.get_user(manager.id) is not None


def test_create_user_via_form(client: TestClient, database: Database) -> None:
    _login(client)
    role = database.get_role_by_name("Worker")

    response = client.post(
        "/dashboard/users",
        data={
            "name": "Carol",
            "email": "carol@example.com",
            "password": "carol-password",
            "role_id": str(role.id),
        },
        follow_redirects=False,
    )
    assert response.status_code == 303
    created = database.get_user_by_email("carol@example.com")
    assert created is not None
    assert created.role == role


def test_logout_clears_session(client: TestClient) -> None:
    _login(client)

    response = client.get("/logout", follow_redirects=False)
    assert response.status_code == 303

    follow = client.get("/dashboard", follow_redirects=False)
    assert follow.status_code == 303
    assert follow.headers["location"].endswith("/login")


def test_role_picker_offers_only_outranked_roles(client: TestClient, database: Database) -> None:
    _login(client)
    manager_role = database.get_role_by_name("Manager")
    worker_role = database.get_role_by_name("Worker")

    page = client.get("/dashboard")
    assert f'<option value="{worker_role.id}">Worker (rank 2)</option>' in page.text
    assert f'<option value="{manager_role.id}">Manager (rank 1)</option>' not in page.text

    response = client.post(
        "/dashboard/users",
        data={
            "name": "Peer",
            "email": "peer@example.com",
            "password": "peer-password",
            "role_id": str(manager_role.id),
        },
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert "error=" in response.headers["location"]
    assert database.get_user_by_email("peer@example.com") is None


def test_lowest_rank_sees_no_create_form(client: TestClient) -> None:
    _login(client, "bob@example.com")

    page = client.get("/dashboard")
    assert "you cannot create users" in page.text
    assert 'name="role_id"' not in page.text
