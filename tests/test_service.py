"""End-to-end tests for the taskboard HTTP API."""

from __future__ import annotations

import inspect
import sqlite3
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fastapi.testclient import TestClient

import taskboard
from taskboard.config import Settings
from taskboard.database import Database
from taskboard.service import create_api_app, create_app
from taskboard.web import SESSION_COOKIE_NAME

PASSWORD = "SuperSecret123!"


class TaskboardServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        base = Path(self._tempdir.name)
        self.database = Database(base / "taskboard.sqlite3")
        self.database.initialize()
        self.manager_role = self.database.create_role("Manager", 1)
        self.worker_role = self.database.create_role("Worker", 2)
        self.manager = self.database.create_user("Alice", "alice@example.com", PASSWORD, self.manager_role.id)
        self.worker = self.database.create_user("Bob", "bob@example.com", PASSWORD, self.worker_role.id)
        self.settings = Settings(
            database_path=base / "taskboard.sqlite3",
            roles_path=base / "roles.yaml",
            secure_cookies=False,
        )
        self.app = create_app(database=self.database, settings=self.settings)

    def tearDown(self) -> None:
        self._tempdir.cleanup()

    def _login(self, client: TestClient, email: str = "alice@example.com") -> None:
        response = client.post("/api/login", json={"email": email, "password": PASSWORD})
        self.assertEqual(response.status_code, 200, response.text)

    def test_roles_are_listed_by_rank(self) -> None:
        self.database.create_role("Administrator", 0)
        with TestClient(self.app) as client:
            response = client.get("/api/roles")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([role["name"] for role in response.json()], ["Administrator", "Manager", "Worker"])

    def test_login_sets_cookie_and_auth_reports_user(self) -> None:
        with TestClient(self.app) as client:
            response = client.post(
                "/api/login",
                json={"email": "alice@example.com", "password": PASSWORD},
            )
            self.assertEqual(response.status_code, 200, response.text)
            payload = response.json()
            self.assertEqual(payload["id"], self.manager.id)
            self.assertNotIn("password_hash", payload)
            self.assertIn(SESSION_COOKIE_NAME, response.cookies)

            auth = client.get("/api/auth")
            self.assertEqual(auth.status_code, 200)
            self.assertEqual(auth.json()["authenticated"], True)
            self.assertEqual(auth.json()["user"]["role"]["name"], "Manager")

            logout = client.post("/api/logout")
            self.assertEqual(logout.status_code, 200)
            self.assertEqual(logout.json(), {"message": "Logged out successfully"})

            after = client.get("/api/auth")
            self.assertEqual(after.status_code, 401)
            self.assertEqual(after.json(), {"authenticated": False})

            again = client.post("/api/logout")
            self.assertEqual(again.status_code, 200)

    def test_login_failures(self) -> None:
        with TestClient(self.app) as client:
            missing = client.post("/api/login", json={"email": "alice@example.com"})
            self.assertEqual(missing.status_code, 400)
            self.assertEqual(missing.json()["error"], "invalid")

            unknown = client.post("/api/login", json={"email": "zed@example.com", "password": PASSWORD})
            self.assertEqual(unknown.status_code, 404)

            wrong = client.post("/api/login", json={"email": "alice@example.com", "password": "nope"})
            self.assertEqual(wrong.status_code, 401)
            self.assertEqual(wrong.json()["error"], "unauthorized")

    def test_mutations_require_session(self) -> None:
        with TestClient(self.app) as client:
            response = client.post(f"/api/users/{self.worker.id}/tasks", json={"task_name": "x"})
            self.assertEqual(response.status_code, 401)
            self.assertEqual(client.get("/api/users").status_code, 401)
            self.assertEqual(client.delete(f"/api/users/{self.worker.id}").status_code, 401)

        self.assertEqual(self.database.get_user(self.worker.id).tasks, ())

    def test_task_lifecycle_over_http(self) -> None:
        with TestClient(self.app) as client:
            self._login(client)

            assigned = client.post(
                f"/api/users/{self.worker.id}/tasks",
                json={"task_name": "Write report"},
            )
            self.assertEqual(assigned.status_code, 200, assigned.text)
            tasks = assigned.json()["tasks"]
            self.assertEqual([(t["name"], t["is_completed"]) for t in tasks], [("Write report", False)])
            task_id = tasks[0]["id"]

            toggled = client.post(
                f"/api/users/{self.worker.id}/tasks/0/toggle",
                json={"task_id": task_id},
            )
            self.assertEqual(toggled.status_code, 200, toggled.text)
            self.assertTrue(toggled.json()["tasks"][0]["is_completed"])

            toggled_back = client.post(f"/api/users/{self.worker.id}/tasks/0/toggle")
            self.assertEqual(toggled_back.status_code, 200, toggled_back.text)
            self.assertFalse(toggled_back.json()["tasks"][0]["is_completed"])

            missing_index = client.post(f"/api/users/{self.worker.id}/tasks/3/toggle")
            self.assertEqual(missing_index.status_code, 404)

            stale = client.delete(
                f"/api/users/{self.worker.id}/tasks/0",
                params={"task_id": "not-the-right-id"},
            )
            self.assertEqual(stale.status_code, 409)

            removed = client.delete(f"/api/users/{self.worker.id}/tasks/0", params={"task_id": task_id})
            self.assertEqual(removed.status_code, 200, removed.text)
            self.assertEqual(removed.json()["tasks"], [])

    def test_assignment_is_rank_gated(self) -> None:
        with TestClient(self.app) as client:
            self._login(client, "bob@example.com")

            upward = client.post(
                f"/api/users/{self.manager.id}/tasks",
                json={"task_name": "Approve my leave"},
            )
            self.assertEqual(upward.status_code, 403)
            self.assertEqual(upward.json()["error"], "forbidden")

            missing = client.post("/api/users/999/tasks", json={"task_name": "Nobody"})
            self.assertEqual(missing.status_code, 404)

            blank = client.post(f"/api/users/{self.manager.id}/tasks", json={})
            self.assertEqual(blank.status_code, 400)

        self.assertEqual(self.database.get_user(self.manager.id).tasks, ())

    def test_create_list_and_delete_users(self) -> None:
        with TestClient(self.app) as client:
            self._login(client)

            created = client.post(
                "/api/users",
                json={
                    "name": "Carol",
                    "email": "carol@example.com",
                    "password": "another-secret",
                    "role_id": self.worker_role.id,
                },
            )
            self.assertEqual(created.status_code, 201, created.text)
            carol = created.json()
            self.assertEqual(carol["role"]["name"], "Worker")
            self.assertEqual(carol["tasks"], [])
            self.assertNotIn("password", carol)

            duplicate = client.post(
                "/api/users",
                json={
                    "name": "Carol Again",
                    "email": "carol@example.com",
                    "password": "whatever",
                    "role_id": self.worker_role.id,
                },
            )
            self.assertEqual(duplicate.status_code, 409)

            bad_role = client.post(
                "/api/users",
                json={
                    "name": "Dan",
                    "email": "dan@example.com",
                    "password": "whatever",
                    "role_id": 999,
                },
            )
            self.assertEqual(bad_role.status_code, 404)

            listing = client.get("/api/users")
            self.assertEqual(listing.status_code, 200)
            self.assertEqual(
                [user["email"] for user in listing.json()],
                ["alice@example.com", "bob@example.com", "carol@example.com"],
            )

            deleted = client.delete(f"/api/users/{carol['id']}")
            self.assertEqual(deleted.status_code, 200)
            self.assertEqual(deleted.json(), {"message": "User deleted"})

            missing = client.delete(f"/api/users/{carol['id']}")
            self.assertEqual(missing.status_code, 404)

            forbidden = client.delete(f"/api/users/{self.manager.id}")
            self.assertEqual(forbidden.status_code, 403)

        self.assertEqual(len(self.database.list_users()), 2)

    def test_store_failures_are_reported_as_internal(self) -> None:
        app = create_api_app(database=self.database, settings=self.settings)
        with TestClient(app) as client:
            with mock.patch.object(Database, "list_roles", side_effect=sqlite3.OperationalError("disk I/O error")):
                response = client.get("/api/roles")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "internal", "detail": "Internal server error"})

    def test_unreadable_task_data_is_reported_as_internal(self) -> None:
        conn = sqlite3.connect(self.database.path)
        try:
            conn.execute("UPDATE users SET tasks = ? WHERE id = ?", ("{broken", self.manager.id))
            conn.commit()
        finally:
            conn.close()

        with TestClient(self.app) as client:
            response = client.post("/api/login", json={"email": "alice@example.com", "password": PASSWORD})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.headers["content-type"], "application/json")
        self.assertEqual(response.json()["error"], "internal")

    def test_unexpected_failures_are_reported_as_internal(self) -> None:
        app = create_api_app(database=self.database, settings=self.settings)
        with TestClient(app, raise_server_exceptions=False) as client:
            with mock.patch.object(Database, "list_roles", side_effect=RuntimeError("boom")):
                response = client.get("/api/roles")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "internal", "detail": "Internal server error"})

    def test_repeat_login_revokes_previous_token(self) -> None:
        sessions = self.app.state.session_manager
        with TestClient(self.app) as client:
            self._login(client)
            first = client.cookies.get(SESSION_COOKIE_NAME)
            for _ in range(4):
                self._login(client)

            self.assertEqual(sessions.count(), 1)
            self.assertIsNone(sessions.resolve(first))
            self.assertEqual(client.get("/api/auth").status_code, 200)

    def test_created_roles_must_be_outranked_by_creator(self) -> None:
        with TestClient(self.app) as client:
            self._login(client, "bob@example.com")
            response = client.post(
                "/api/users",
                json={
                    "name": "Mallory",
                    "email": "mallory@example.com",
                    "password": "whatever",
                    "role_id": self.manager_role.id,
                },
            )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"], "forbidden")
        self.assertIsNone(self.database.get_user_by_email("mallory@example.com"))

    def test_api_endpoints_run_in_threadpool(self) -> None:
        api_routes = [route for route in self.app.routes if getattr(route, "path", "").startswith("/api/")]
        self.assertTrue(api_routes)
        for route in api_routes:
            self.assertFalse(inspect.iscoroutinefunction(route.endpoint), route.path)

    def test_app_reports_package_version(self) -> None:
        self.assertEqual(self.app.version, taskboard.__version__)

    def test_api_only_app_has_no_dashboard(self) -> None:
        app = create_api_app(database=self.database, settings=self.settings)
        with TestClient(app) as client:
            self.assertEqual(client.get("/api/healthz").json(), {"status": "ok"})
            self.assertEqual(client.get("/dashboard").status_code, 404)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
