"""End-to-end tests for the tracker HTTP API."""

from __future__ import annotations

import tempfile
import unittest
import uuid
from pathlib import Path

from fastapi import Response
from fastapi.testclient import TestClient

from app.api import render_result
from app.config import TrackerSettings
from app.database import Database
from app.identity import DEFAULT_SESSION_COOKIE
from app.results import ErrorKind, Result
from app.service import create_app

PASSWORD = "SuperSecret123!"


class TrackerServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        db_path = Path(self._tempdir.name) / "tracker.sqlite3"
        self.database = Database(db_path)
        self.database.initialize()
        self.settings = TrackerSettings(database_path=db_path, secure_cookies=False)
        self.app = create_app(database=self.database, settings=self.settings)
        self.alice = self.database.create_user("Alice", "alice@example.com", PASSWORD)
        self.bob = self.database.create_user("Bob", "bob@example.com", PASSWORD)

    def tearDown(self) -> None:
        self._tempdir.cleanup()

    def _client(self, email: str | None = None) -> TestClient:
        client = TestClient(self.app)
        if email is not None:
            response = client.post("/auth/login", json={"email": email, "password": PASSWORD})
            self.assertEqual(response.status_code, 200, response.text)
        return client

    def _create(self, client: TestClient, **overrides) -> dict:
        payload = {
            "company_name": "Acme",
            "position_title": "Engineer",
            "application_date": "2024-03-01",
        }
        payload.update(overrides)
        response = client.post("/api/applications", json=payload)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["data"]

    def test_healthcheck(self) -> None:
        with self._client() as client:
            response = client.get("/healthz")
        self.assertEqual(response.json(), {"status": "ok"})

    def test_login_sets_http_only_cookie(self) -> None:
        with self._client() as client:
            response = client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json()["user"]["id"], self.alice.id)
            set_cookie = response.headers["set-cookie"]
            self.assertIn(f"{DEFAULT_SESSION_COOKIE}=", set_cookie)
            self.assertIn("HttpOnly", set_cookie)
            self.assertIn("samesite=lax", set_cookie.lower())

            me = client.get("/auth/me")
            self.assertEqual(me.status_code, 200)
            self.assertEqual(me.json()["user"]["email"], "alice@example.com")
            self.assertIn(DEFAULT_SESSION_COOKIE, me.headers.get("set-cookie", ""))

    def test_login_rejects_bad_credentials(self) -> None:
        with self._client() as client:
            response = client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong"})
            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.json(), {"error": "Invalid email or password."})
            self.assertEqual(client.get("/auth/me").status_code, 401)

    def test_signup_creates_account_and_session(self) -> None:
        with self._client() as client:
            response = client.post(
                "/auth/signup",
                json={"name": "Carol", "email": "Carol@Example.com", "password": PASSWORD},
            )
            self.assertEqual(response.status_code, 201, response.text)
            self.assertEqual(response.json()["user"]["email"], "carol@example.com")

            created = self._create(client)
            self.assertEqual(created["owner"], response.json()["user"]["id"])

    def test_signup_validation(self) -> None:
        with self._client() as client:
            short = client.post("/auth/signup", json={"name": "Carol", "email": "carol@example.com", "password": "short"})
            self.assertEqual(short.status_code, 400)
            self.assertIn("password", short.json()["details"])

            duplicate = client.post(
                "/auth/signup",
                json={"name": "Alice Again", "email": "alice@example.com", "password": PASSWORD},
            )
            self.assertEqual(duplicate.status_code, 400)

            bad_email = client.post("/auth/signup", json={"name": "Carol", "email": "carol", "password": PASSWORD})
            self.assertEqual(bad_email.status_code, 400)
            self.assertIn("email", bad_email.json()["details"])

    def test_unauthenticated_requests_are_rejected(self) -> None:
        some_id = str(uuid.uuid4())
        with self._client() as client:
            responses = [
                client.get("/api/applications"),
                client.post("/api/applications", content=b"not json"),
                client.get(f"/api/applications/{some_id}"),
                client.patch(f"/api/applications/{some_id}", json={}),
                client.delete(f"/api/applications/{some_id}"),
                client.get("/api/insights"),
            ]
        for response in responses:
            self.assertEqual(response.status_code, 401, response.text)
            self.assertEqual(response.json(), {"error": "Unauthorized"})

    def test_forged_cookie_is_cleared(self) -> None:
        with self._client() as client:
            response = client.get(
                "/api/applications",
                headers={"cookie": f"{DEFAULT_SESSION_COOKIE}=forged-token"},
            )
        self.assertEqual(response.status_code, 401)
        self.assertIn(f'{DEFAULT_SESSION_COOKIE}=""', response.headers.get("set-cookie", ""))

    def test_application_lifecycle(self) -> None:
        with self._client("alice@example.com") as client:
            created = self._create(client, notes="Referral", owner=self.bob.id, id=str(uuid.uuid4()))
            self.assertEqual(created["owner"], self.alice.id)
            self.assertEqual(created["status"], "applied")

            listed = client.get("/api/applications")
            self.assertEqual(listed.status_code, 200)
            self.assertEqual([item["id"] for item in listed.json()["data"]], [created["id"]])

            fetched = client.get(f"/api/applications/{created['id']}")
            self.assertEqual(fetched.json()["data"], created)

            patched = client.patch(f"/api/applications/{created['id']}", json={"status": "interviewing"})
            self.assertEqual(patched.status_code, 200, patched.text)
            body = patched.json()["data"]
            self.assertEqual(body["status"], "interviewing")
            self.assertEqual(body["notes"], "Referral")
            self.assertGreater(body["updated_at"], created["updated_at"])

            deleted = client.delete(f"/api/applications/{created['id']}")
            self.assertEqual(deleted.status_code, 200)
            self.assertEqual(
                deleted.json(),
                {
                    "success": True,
                    "message": "Application deleted successfully",
                    "data": {"id": created["id"]},
                },
            )

            missing = client.get(f"/api/applications/{created['id']}")
            self.assertEqual(missing.status_code, 404)
            self.assertEqual(missing.json(), {"error": "Application not found"})

    def test_other_users_records_are_not_found(self) -> None:
        with self._client("alice@example.com") as alice:
            created = self._create(alice)

        with self._client("bob@example.com") as bob:
            self.assertEqual(bob.get("/api/applications").json(), {"data": []})
            self.assertEqual(bob.get(f"/api/applications/{created['id']}").status_code, 404)
            self.assertEqual(
                bob.patch(f"/api/applications/{created['id']}", json={"status": "offer"}).status_code,
                404,
            )
            self.assertEqual(bob.delete(f"/api/applications/{created['id']}").status_code, 404)

        with self._client("alice@example.com") as alice:
            still_there = alice.get(f"/api/applications/{created['id']}")
        self.assertEqual(still_there.json()["data"]["status"], "applied")

    def test_validation_failures(self) -> None:
        with self._client("alice@example.com") as client:
            invalid = client.post(
                "/api/applications",
                json={"company_name": "", "position_title": "Engineer", "application_date": "2024-02-30"},
            )
            self.assertEqual(invalid.status_code, 400)
            payload = invalid.json()
            self.assertEqual(payload["error"], "Validation failed")
            self.assertEqual(set(payload["details"]), {"company_name", "application_date"})

            not_json = client.post(
                "/api/applications",
                content=b"{not json",
                headers={"content-type": "application/json"},
            )
            self.assertEqual(not_json.status_code, 400)
            self.assertEqual(not_json.json(), {"error": "Invalid JSON"})

            not_object = client.post("/api/applications", json=["Acme"])
            self.assertEqual(not_object.status_code, 400)

            bad_id = client.get("/api/applications/not-a-uuid")
            self.assertEqual(bad_id.status_code, 400)
            self.assertEqual(bad_id.json()["details"], {"id": "Invalid application ID"})

            created = self._create(client)
            empty = client.patch(f"/api/applications/{created['id']}", json={})
            self.assertEqual(empty.status_code, 400)
            self.assertEqual(empty.json(), {"error": "No fields to update"})

            immutable = client.patch(f"/api/applications/{created['id']}", json={"owner": self.bob.id})
            self.assertEqual(immutable.status_code, 400)
            self.assertEqual(
                immutable.json()["details"],
                {"owner": "Field is immutable and cannot be updated"},
            )

    def test_insights_summarise_own_applications(self) -> None:
        with self._client("bob@example.com") as bob:
            self._create(bob, status="offer")

        with self._client("alice@example.com") as client:
            self._create(client)
            self._create(client, company_name="Globex", application_date="2024-03-02", status="rejected")
            response = client.get("/api/insights")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["data"],
            {
                "total": 2,
                "by_status": [{"status": "applied", "count": 1}, {"status": "rejected", "count": 1}],
                "by_date": [{"date": "2024-03-01", "count": 1}, {"date": "2024-03-02", "count": 1}],
            },
        )

    def test_logout_revokes_session(self) -> None:
        with self._client("alice@example.com") as client:
            self.assertEqual(client.get("/api/applications").status_code, 200)
            token = client.cookies.get(DEFAULT_SESSION_COOKIE)

            self.assertEqual(client.post("/auth/logout").status_code, 200)
            replayed = client.get("/api/applications", headers={"cookie": f"{DEFAULT_SESSION_COOKIE}={token}"})
            self.assertEqual(replayed.status_code, 401)

    def test_account_deletion_removes_applications(self) -> None:
        with self._client("alice@example.com") as client:
            self._create(client)
            response = client.delete("/auth/me")
            self.assertEqual(response.status_code, 200)
            self.assertEqual(client.get("/api/applications").status_code, 401)

        self.assertIsNone(self.database.get_user(self.alice.id))
        with self.database._transaction() as conn, conn.read_guard.trusted():
            count = conn.execute("SELECT count(*) FROM applications").fetchone()[0]
        self.assertEqual(count, 0)


class RenderResultTests(unittest.TestCase):
    def _render(self, result: Result) -> tuple[int, dict]:
        response = Response()
        payload = render_result(response, result, lambda data: {"data": data}, success_status=201)
        return response.status_code, payload

    def test_success_uses_requested_status(self) -> None:
        self.assertEqual(self._render(Result.ok([1, 2])), (201, {"data": [1, 2]}))

    def test_failure_kinds_map_to_status_codes(self) -> None:
        self.assertEqual(self._render(Result.unauthenticated()), (401, {"error": "Unauthorized"}))
        self.assertEqual(self._render(Result.not_found()), (404, {"error": "Application not found"}))
        self.assertEqual(
            self._render(Result.invalid({"company_name": "Company name is required"})),
            (400, {"error": "Validation failed", "details": {"company_name": "Company name is required"}}),
        )
        self.assertEqual(
            self._render(Result.fail(ErrorKind.STORAGE, "Unable to load applications.")),
            (500, {"error": "Unable to load applications."}),
        )

    def test_failure_without_reason_is_a_server_error(self) -> None:
        status_code, payload = self._render(Result(success=False))
        self.assertEqual(status_code, 500)
        self.assertEqual(payload, {"error": "Unexpected error. Please try again."})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
