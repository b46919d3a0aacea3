"""End-to-end tests for the accounts HTTP API."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from accounts.api import create_app, parse_int_param
from accounts.authentication import PasswordHasher
from accounts.config import Settings
from accounts.database import Database
from accounts.errors import CollaboratorUnavailableError


class AccountsAPITests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        db_path = Path(self._tempdir.name) / "accounts.sqlite3"
        self.database = Database(db_path)
        self.database.initialize()
        self.hasher = PasswordHasher(rounds=1000)
        self.user_email = "alice@example.com"
        self.user_password = "SuperSecret1"
        self.user = self.database.create_user("Alice", self.user_email, self.hasher.hash(self.user_password))
        self.app = create_app(database=self.database, settings=Settings(), hasher=self.hasher)

    def tearDown(self) -> None:
        self._tempdir.cleanup()

    def _auth(self) -> tuple[str, str]:
        return self.user_email, self.user_password

    def _create(self, client: TestClient, name: str, email: str, password: str = "secret12") -> None:
        response = client.post(
            "/users",
            auth=self._auth(),
            json={"name": name, "email": email, "password": password, "password_confirm": password},
        )
        self.assertEqual(response.status_code, 200, response.text)

    def test_healthcheck(self) -> None:
        with TestClient(self.app) as client:
            response = client.get("/health")
            self.assertEqual(response.json(), {"status": "ok"})

    def test_protected_routes_require_credentials(self) -> None:
        with TestClient(self.app) as client:
            response = client.get("/users")
            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.json()["code"], "invalid_credentials")

            response = client.get("/users", auth=(self.user_email, "wrong"))
            self.assertEqual(response.status_code, 401)

    def test_user_crud_flow(self) -> None:
        with TestClient(self.app) as client:
            created = client.post(
                "/users",
                auth=self._auth(),
                json={
                    "name": "Bob",
                    "email": "bob@example.com",
                    "password": "secret12",
                    "password_confirm": "secret12",
                },
            )
            self.assertEqual(created.status_code, 200, created.text)
            self.assertEqual(created.json(), {"name": "Bob", "email": "bob@example.com"})

            bob = self.database.get_user_by_email("bob@example.com")
            assert bob is not None

            detail = client.get(f"/users/{bob.id}", auth=self._auth())
            self.assertEqual(detail.status_code, 200)
            self.assertEqual(detail.json(), {"id": bob.id, "name": "Bob", "email": "bob@example.com"})

            updated = client.put(
                f"/users/{bob.id}",
                auth=self._auth(),
                json={"name": "Robert", "email": "robert@example.com"},
            )
            self.assertEqual(updated.status_code, 200, updated.text)
            self.assertEqual(updated.json(), {"id": bob.id})
            self.assertEqual(client.get(f"/users/{bob.id}", auth=self._auth()).json()["name"], "Robert")

            deleted = client.delete(f"/users/{bob.id}", auth=self._auth())
            self.assertEqual(deleted.status_code, 200)
            self.assertEqual(deleted.json(), {"id": bob.id})

            missing = client.get(f"/users/{bob.id}", auth=self._auth())
            self.assertEqual(missing.status_code, 404)
            self.assertEqual(missing.json(), {"detail": "Unknown user", "code": "not_found"})

    def test_create_user_errors(self) -> None:
        with TestClient(self.app) as client:
            mismatch = client.post(
                "/users",
                auth=self._auth(),
                json={
                    "name": "Bob",
                    "email": "bob@example.com",
                    "password": "secret12",
                    "password_confirm": "secret13",
                },
            )
            self.assertEqual(mismatch.status_code, 400)
            self.assertEqual(mismatch.json()["code"], "validation")

            duplicate = client.post(
                "/users",
                auth=self._auth(),
                json={
                    "name": "Alice Again",
                    "email": self.user_email,
                    "password": "secret12",
                    "password_confirm": "secret12",
                },
            )
            self.assertEqual(duplicate.status_code, 409)
            self.assertEqual(duplicate.json()["detail"], "Email is already registered")

            short = client.post(
                "/users",
                auth=self._auth(),
                json={
                    "name": "Bob",
                    "email": "bob@example.com",
                    "password": "abc",
                    "password_confirm": "abc",
                },
            )
            self.assertEqual(short.status_code, 400)

            malformed = client.post(
                "/users",
                auth=self._auth(),
                json={
                    "name": "Bob",
                    "email": "not-an-email",
                    "password": "secret12",
                    "password_confirm": "secret12",
                },
            )
            self.assertEqual(malformed.status_code, 422)

    def test_list_users_with_search_sort_and_pagination(self) -> None:
        with TestClient(self.app) as client:
            self._create(client, "Bob", "bob@sample.net")
            self._create(client, "carol", "carol@example.com")
            self._create(client, "Dave", "dave@sample.net")

            response = client.get(
                "/users",
                auth=self._auth(),
                params={"page_number": 1, "page_size": 2, "search": "email:SAMPLE", "sort": "name:desc"},
            )
            self.assertEqual(response.status_code, 200, response.text)
            payload = response.json()
            self.assertEqual(payload["page_number"], 1)
            self.assertEqual(payload["page_size"], 2)
            self.assertEqual(payload["count"], 2)
            self.assertEqual(payload["total_pages"], 1)
            self.assertFalse(payload["has_previous_page"])
            self.assertFalse(payload["has_next_page"])
            self.assertEqual([item["name"] for item in payload["data"]], ["Dave", "Bob"])
            for item in payload["data"]:
                self.assertEqual(set(item), {"id", "name", "email"})

            everything = client.get("/users", auth=self._auth()).json()
            self.assertIsNone(everything["page_size"])
            self.assertEqual(everything["count"], 4)
            self.assertEqual(everything["total_pages"], 1)

            paged = client.get(
                "/users",
                auth=self._auth(),
                params={"page_number": 2, "page_size": 3, "sort": "email:asc"},
            ).json()
            self.assertEqual(paged["count"], 1)
            self.assertTrue(paged["has_previous_page"])
            self.assertEqual(paged["data"][0]["email"], "dave@sample.net")

    def test_list_users_tolerates_junk_paging_parameters(self) -> None:
        with TestClient(self.app) as client:
            response = client.get(
                "/users",
                auth=self._auth(),
                params={"page_number": "abc", "page_size": "0"},
            )
            self.assertEqual(response.status_code, 200)
            payload = response.json()
            self.assertEqual(payload["page_number"], 1)
            self.assertIsNone(payload["page_size"])
            self.assertEqual(payload["count"], 1)

    def test_change_password(self) -> None:
        with TestClient(self.app) as client:
            wrong = client.post(
                f"/users/{self.user.id}/change-password",
                auth=self._auth(),
                json={
                    "password_old": "nope",
                    "password_new": "NewSecret1",
                    "password_confirm": "NewSecret1",
                },
            )
            self.assertEqual(wrong.status_code, 401)
            self.assertEqual(wrong.json()["detail"], "Wrong password")

            mismatch = client.post(
                f"/users/{self.user.id}/change-password",
                auth=self._auth(),
                json={
                    "password_old": self.user_password,
                    "password_new": "NewSecret1",
                    "password_confirm": "NewSecret2",
                },
            )
            self.assertEqual(mismatch.status_code, 400)

            changed = client.post(
                f"/users/{self.user.id}/change-password",
                auth=self._auth(),
                json={
                    "password_old": self.user_password,
                    "password_new": "NewSecret1",
                    "password_confirm": "NewSecret1",
                },
            )
            self.assertEqual(changed.status_code, 200, changed.text)
            self.assertEqual(changed.json(), {"id": self.user.id})

            login = client.post(
                "/authentication/login",
                json={"email": self.user_email, "password": "NewSecret1"},
            )
            self.assertEqual(login.status_code, 200)

    def test_confirmation_mismatch_reported_before_password_length(self) -> None:
        with TestClient(self.app) as client:
            create = client.post(
                "/users",
                auth=self._auth(),
                json={
                    "name": "Bob",
                    "email": "bob@example.com",
                    "password": "abc",
                    "password_confirm": "abd",
                },
            )
            self.assertEqual(create.status_code, 400)
            self.assertEqual(create.json()["detail"], "Password confirmation mismatched")

            change = client.post(
                f"/users/{self.user.id}/change-password",
                auth=self._auth(),
                json={
                    "password_old": self.user_password,
                    "password_new": "abc",
                    "password_confirm": "abd",
                },
            )
            self.assertEqual(change.status_code, 400)
            self.assertEqual(change.json()["detail"], "Password confirmation mismatched")

            short = client.post(
                f"/users/{self.user.id}/change-password",
                auth=self._auth(),
                json={
                    "password_old": self.user_password,
                    "password_new": "abc",
                    "password_confirm": "abc",
                },
            )
            self.assertEqual(short.status_code, 400)
            self.assertEqual(short.json()["detail"], "Password must be at least 6 characters long")

    def test_transfer_flow(self) -> None:
        with TestClient(self.app) as client:
            self._create(client, "Bob", "bob@example.com")
            bob = self.database.get_user_by_email("bob@example.com")
            assert bob is not None

            created = client.post(
                "/transfers",
                auth=self._auth(),
                json={"from_user_id": self.user.id, "to_user_id": bob.id, "amount": 15.5},
            )
            self.assertEqual(created.status_code, 201, created.text)
            transfer = created.json()
            self.assertEqual(transfer["amount"], 15.5)
            self.assertEqual(transfer["from_user_id"], self.user.id)

            listing = client.get("/transfers", auth=self._auth())
            self.assertEqual([item["id"] for item in listing.json()], [transfer["id"]])

            updated = client.put(f"/transfers/{transfer['id']}", auth=self._auth(), json={"amount": 40})
            self.assertEqual(updated.status_code, 200)
            self.assertEqual(updated.json()["amount"], 40.0)

            detail = client.get(f"/transfers/{transfer['id']}", auth=self._auth())
            self.assertEqual(detail.json()["amount"], 40.0)

            deleted = client.delete(f"/transfers/{transfer['id']}", auth=self._auth())
            self.assertEqual(deleted.json(), {"id": transfer["id"]})

            missing = client.get(f"/transfers/{transfer['id']}", auth=self._auth())
            self.assertEqual(missing.status_code, 404)

    def test_transfer_validation_errors(self) -> None:
        with TestClient(self.app) as client:
            negative = client.post(
                "/transfers",
                auth=self._auth(),
                json={"from_user_id": self.user.id, "to_user_id": 2, "amount": -5},
            )
            self.assertEqual(negative.status_code, 422)

            unknown = client.post(
                "/transfers",
                auth=self._auth(),
                json={"from_user_id": self.user.id, "to_user_id": 999, "amount": 5},
            )
            self.assertEqual(unknown.status_code, 404)

            self_transfer = client.post(
                "/transfers",
                auth=self._auth(),
                json={"from_user_id": self.user.id, "to_user_id": self.user.id, "amount": 5},
            )
            self.assertEqual(self_transfer.status_code, 400)

    def test_storage_outage_maps_to_service_unavailable(self) -> None:
        with TestClient(self.app) as client:
            def broken_list_users():
                raise CollaboratorUnavailableError("User storage is unavailable")

            self.database.list_users = broken_list_users  # type: ignore[method-assign]
            response = client.get("/users", auth=self._auth())
            self.assertEqual(response.status_code, 503)
            self.assertEqual(response.json()["code"], "collaborator_unavailable")


def test_parse_int_param() -> None:
    assert parse_int_param(None) is None
    assert parse_int_param(" 4 ") == 4
    assert parse_int_param("four") is None


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
