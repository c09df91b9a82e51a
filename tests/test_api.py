"""API tests through FastAPI's TestClient with SQLite and a temp upload dir in place of Postgres and ./uploads."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_file_storage
from app.core.database import get_db
from app.main import app
from app.models import Base, User, UserRole
from app.services.storage import FileStorage

PASSWORD = "Password123"
PNG = ("photo.png", b"\x89PNG\r\n\x1a\nfake", "image/png")


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        patcher = patch("app.core.security.BCRYPT_ROUNDS", 4)
        patcher.start()
        self.addCleanup(patcher.stop)

        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        self.addCleanup(engine.dispose)
        self.SessionTest = sessionmaker(bind=engine, autocommit=False, autoflush=False)

        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.tmp = Path(tmp.name)
        self.storage = FileStorage(
            self.tmp / "uploads",
            {"image/png", "image/jpeg", "application/pdf"},
            max_file_size=1024,
        )
        self.storage.ensure_directories()

        def override_get_db():
            db = self.SessionTest()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_file_storage] = lambda: self.storage
        self.addCleanup(app.dependency_overrides.clear)
        self.client = TestClient(app)

    def register(self, username: str, **overrides: str) -> dict:
        body = {
            "username": username,
            "email": f"{username}@example.com",
            "password": PASSWORD,
            "firstName": "Test",
            "lastName": "User",
        }
        body.update(overrides)
        resp = self.client.post("/api/auth/register", json=body)
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()["data"]

    def auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def update_user(self, user_id: int, **fields: object) -> None:
        with self.SessionTest() as db:
            user = db.get(User, user_id)
            for name, value in fields.items():
                setattr(user, name, value)
            db.commit()

    def load_user(self, user_id: int) -> User | None:
        with self.SessionTest() as db:
            user = db.get(User, user_id)
            if user is not None:
                db.expunge(user)
            return user

    def make_admin(self, username: str = "admin") -> tuple[str, int]:
        data = self.register(username)
        self.update_user(data["user"]["id"], role=UserRole.ADMIN)
        return data["token"], data["user"]["id"]


class TestAuthFlow(ApiTestCase):
    def test_register_returns_token_and_public_user(self) -> None:
        resp = self.client.post(
            "/api/auth/register",
            json={
                "username": "alice",
                "email": "Alice@Example.com",
                "password": PASSWORD,
                "firstName": "Alice",
                "lastName": "Smith",
            },
        )
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["message"], "User registered successfully")
        user = body["data"]["user"]
        self.assertEqual(user["email"], "alice@example.com")
        self.assertEqual(user["role"], "user")
        self.assertTrue(user["isActive"])
        self.assertNotIn("password", user)
        self.assertNotIn("passwordHash", user)
        self.assertTrue(body["data"]["token"])

    def test_register_validation_errors(self) -> None:
        resp = self.client.post(
            "/api/auth/register",
            json={"username": "a!", "email": "nope", "password": "short", "firstName": "", "lastName": "X"},
        )
        self.assertEqual(resp.status_code, 400)
        body = resp.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["message"], "Validation failed")
        fields = {e["field"] for e in body["errors"]}
        self.assertTrue({"username", "email", "password", "firstName"} <= fields)

    def test_duplicate_username_or_email(self) -> None:
        self.register("alice")
        resp = self.client.post(
            "/api/auth/register",
            json={
                "username": "alice",
                "email": "other@example.com",
                "password": PASSWORD,
                "firstName": "A",
                "lastName": "B",
            },
        )
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post(
            "/api/auth/register",
            json={
                "username": "alice2",
                "email": "ALICE@example.com",
                "password": PASSWORD,
                "firstName": "A",
                "lastName": "B",
            },
        )
        self.assertEqual(resp.status_code, 400)

    def test_login_by_username_or_email_then_me(self) -> None:
        self.register("alice")
        for identifier in ("alice", "ALICE@example.com"):
            with self.subTest(identifier=identifier):
                resp = self.client.post(
                    "/api/auth/login", json={"identifier": identifier, "password": PASSWORD}
                )
                self.assertEqual(resp.status_code, 200)
                self.assertEqual(resp.json()["message"], "Login successful")
                token = resp.json()["data"]["token"]
                me = self.client.get("/api/auth/me", headers=self.auth(token))
                self.assertEqual(me.status_code, 200)
                self.assertEqual(me.json()["data"]["user"]["username"], "alice")

    def test_wrong_password_and_unknown_user_look_identical(self) -> None:
        self.register("alice")
        wrong = self.client.post("/api/auth/login", json={"identifier": "alice", "password": "Wrong1234"})
        unknown = self.client.post("/api/auth/login", json={"identifier": "bob", "password": PASSWORD})
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(unknown.status_code, 401)
        self.assertEqual(wrong.json(), unknown.json())

    def test_inactive_user_cannot_login_or_use_token(self) -> None:
        data = self.register("alice")
        self.update_user(data["user"]["id"], is_active=False)
        resp = self.client.post("/api/auth/login", json={"identifier": "alice", "password": PASSWORD})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["message"], "Account is deactivated")
        me = self.client.get("/api/auth/me", headers=self.auth(data["token"]))
        self.assertEqual(me.status_code, 401)

    def test_missing_malformed_or_orphaned_token(self) -> None:
        resp = self.client.get("/api/auth/me")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["message"], "Not authorized, no token")
        self.assertEqual(resp.headers["www-authenticate"], "Bearer")

        resp = self.client.get("/api/auth/me", headers=self.auth("garbage"))
        self.assertEqual(resp.status_code, 401)

        data = self.register("alice")
        with self.SessionTest() as db:
            db.delete(db.get(User, data["user"]["id"]))
            db.commit()
        resp = self.client.get("/api/auth/me", headers=self.auth(data["token"]))
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["message"], "Not authorized, user not found")

    def test_update_profile(self) -> None:
        token = self.register("alice")["token"]
        resp = self.client.put(
            "/api/auth/update-profile",
            json={"firstName": "Alicia", "email": "NEW@example.com"},
            headers=self.auth(token),
        )
        self.assertEqual(resp.status_code, 200)
        user = resp.json()["data"]["user"]
        self.assertEqual(user["firstName"], "Alicia")
        self.assertEqual(user["lastName"], "User")
        self.assertEqual(user["email"], "new@example.com")

    def test_update_profile_rejects_role_and_status(self) -> None:
        data = self.register("alice")
        for body in ({"role": "admin"}, {"isActive": False}):
            with self.subTest(body=body):
                resp = self.client.put("/api/auth/update-profile", json=body, headers=self.auth(data["token"]))
                self.assertEqual(resp.status_code, 400)
        user = self.load_user(data["user"]["id"])
        self.assertEqual(user.role, UserRole.USER)
        self.assertTrue(user.is_active)

    def test_update_profile_email_taken(self) -> None:
        self.register("bob")
        token = self.register("alice")["token"]
        resp = self.client.put(
            "/api/auth/update-profile", json={"email": "bob@example.com"}, headers=self.auth(token)
        )
        self.assertEqual(resp.status_code, 400)

    def test_change_password(self) -> None:
        token = self.register("alice")["token"]
        resp = self.client.put(
            "/api/auth/change-password",
            json={"currentPassword": "Wrong1234", "newPassword": "NewPassword1"},
            headers=self.auth(token),
        )
        self.assertEqual(resp.status_code, 401)

        resp = self.client.put(
            "/api/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "NewPassword1"},
            headers=self.auth(token),
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["message"], "Password changed successfully")

        old = self.client.post("/api/auth/login", json={"identifier": "alice", "password": PASSWORD})
        new = self.client.post("/api/auth/login", json={"identifier": "alice", "password": "NewPassword1"})
        self.assertEqual(old.status_code, 401)
        self.assertEqual(new.status_code, 200)
        # Issued tokens are not revoked by a password change.
        self.assertEqual(self.client.get("/api/auth/me", headers=self.auth(token)).status_code, 200)


class TestUserAdministration(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.admin_token, self.admin_id = self.make_admin()
        data = self.register("alice")
        self.user_token, self.user_id = data["token"], data["user"]["id"]

    def test_non_admin_is_forbidden(self) -> None:
        headers = self.auth(self.user_token)
        for method, url in (
            ("GET", "/api/users"),
            ("GET", "/api/users/stats/overview"),
            ("PUT", f"/api/users/{self.admin_id}/status?isActive=false"),
            ("PUT", f"/api/users/{self.admin_id}/role?role=user"),
            ("DELETE", f"/api/users/{self.admin_id}"),
        ):
            with self.subTest(method=method, url=url):
                resp = self.client.request(method, url, headers=headers)
                self.assertEqual(resp.status_code, 403)
                self.assertIn("not authorized", resp.json()["message"])

    def test_list_pagination(self) -> None:
        for i in range(10):
            self.register(f"user{i:02d}")
        resp = self.client.get("/api/users?page=2&limit=5", headers=self.auth(self.admin_token))
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(len(data["users"]), 5)
        self.assertEqual(
            data["pagination"],
            {
                "currentPage": 2,
                "totalPages": 3,
                "totalUsers": 12,
                "hasNextPage": True,
                "hasPrevPage": True,
                "limit": 5,
            },
        )

    def test_list_filters(self) -> None:
        headers = self.auth(self.admin_token)
        resp = self.client.get("/api/users?role=admin", headers=headers)
        self.assertEqual([u["username"] for u in resp.json()["data"]["users"]], ["admin"])
        self.update_user(self.user_id, is_active=False)
        resp = self.client.get("/api/users?isActive=false", headers=headers)
        self.assertEqual([u["username"] for u in resp.json()["data"]["users"]], ["alice"])
        resp = self.client.get("/api/users?search=ALI", headers=headers)
        self.assertEqual([u["username"] for u in resp.json()["data"]["users"]], ["alice"])

    def test_list_rejects_bad_query(self) -> None:
        headers = self.auth(self.admin_token)
        for query in ("limit=101", "limit=0", "page=0", "role=superuser", "search=" + "x" * 101):
            with self.subTest(query=query):
                resp = self.client.get(f"/api/users?{query}", headers=headers)
                self.assertEqual(resp.status_code, 400)
                self.assertEqual(resp.json()["message"], "Validation failed")

    def test_get_user_permissions(self) -> None:
        resp = self.client.get(f"/api/users/{self.user_id}", headers=self.auth(self.user_token))
        self.assertEqual(resp.status_code, 200)
        resp = self.client.get(f"/api/users/{self.admin_id}", headers=self.auth(self.user_token))
        self.assertEqual(resp.status_code, 403)
        resp = self.client.get(f"/api/users/{self.user_id}", headers=self.auth(self.admin_token))
        self.assertEqual(resp.status_code, 200)
        resp = self.client.get("/api/users/9999", headers=self.auth(self.admin_token))
        self.assertEqual(resp.status_code, 404)
        resp = self.client.get("/api/users/not-an-id", headers=self.auth(self.admin_token))
        self.assertEqual(resp.status_code, 400)

    def test_ids_and_pages_beyond_integer_column_are_rejected(self) -> None:
        headers = self.auth(self.admin_token)
        huge = "99999999999999999999"
        for method, url in (
            ("GET", f"/api/users/{huge}"),
            ("GET", f"/api/users?page={huge}"),
            ("GET", "/api/users/2147483648"),
            ("GET", "/api/users/0"),
            ("PUT", f"/api/users/{huge}/status?isActive=true"),
            ("PUT", f"/api/users/{huge}/role?role=user"),
            ("DELETE", f"/api/users/{huge}"),
        ):
            with self.subTest(method=method, url=url):
                resp = self.client.request(method, url, headers=headers)
                self.assertEqual(resp.status_code, 400)
                self.assertEqual(resp.json()["message"], "Validation failed")

    def test_status_and_role_changes(self) -> None:
        headers = self.auth(self.admin_token)
        resp = self.client.put(f"/api/users/{self.user_id}/status?isActive=false", headers=headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["message"], "User deactivated successfully")
        self.assertFalse(resp.json()["data"]["user"]["isActive"])
        self.assertEqual(self.client.get("/api/auth/me", headers=self.auth(self.user_token)).status_code, 401)

        resp = self.client.put(f"/api/users/{self.user_id}/role?role=admin", headers=headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["message"], "User role updated to admin successfully")
        self.assertEqual(self.load_user(self.user_id).role, UserRole.ADMIN)

    def test_admin_cannot_act_on_self(self) -> None:
        headers = self.auth(self.admin_token)
        for method, url in (
            ("PUT", f"/api/users/{self.admin_id}/status?isActive=false"),
            ("PUT", f"/api/users/{self.admin_id}/role?role=user"),
            ("DELETE", f"/api/users/{self.admin_id}"),
        ):
            with self.subTest(method=method, url=url):
                resp = self.client.request(method, url, headers=headers)
                self.assertEqual(resp.status_code, 400)
        admin = self.load_user(self.admin_id)
        self.assertIsNotNone(admin)
        self.assertTrue(admin.is_active)
        self.assertEqual(admin.role, UserRole.ADMIN)

    def test_delete_user(self) -> None:
        headers = self.auth(self.admin_token)
        resp = self.client.delete(f"/api/users/{self.user_id}", headers=headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["message"], "User deleted successfully")
        self.assertIsNone(self.load_user(self.user_id))
        self.assertEqual(self.client.delete(f"/api/users/{self.user_id}", headers=headers).status_code, 404)
        self.assertEqual(self.client.get("/api/auth/me", headers=self.auth(self.user_token)).status_code, 401)

    def test_stats(self) -> None:
        self.update_user(self.user_id, is_active=False)
        resp = self.client.get("/api/users/stats/overview", headers=self.auth(self.admin_token))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json()["data"]["stats"],
            {
                "totalUsers": 2,
                "activeUsers": 1,
                "inactiveUsers": 1,
                "adminUsers": 1,
                "regularUsers": 1,
                "recentUsers": 2,
            },
        )


class TestUploads(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        data = self.register("alice")
        self.token, self.user_id = data["token"], data["user"]["id"]
        self.headers = self.auth(self.token)

    def profile_files(self) -> list[Path]:
        return sorted(p for p in self.storage.profile_dir.iterdir() if p.is_file())

    def general_files(self) -> list[Path]:
        return sorted(p for p in self.storage.upload_dir.iterdir() if p.is_file())

    def upload_picture(self, part: tuple = PNG):
        return self.client.post(
            "/api/upload/profile-picture", files={"profilePicture": part}, headers=self.headers
        )

    def test_upload_requires_auth(self) -> None:
        resp = self.client.post("/api/upload/profile-picture", files={"profilePicture": PNG})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(self.profile_files(), [])

    def test_profile_picture_replaces_previous_file(self) -> None:
        first = self.upload_picture()
        self.assertEqual(first.status_code, 200, first.text)
        first_url = first.json()["data"]["url"]
        self.assertTrue(first_url.startswith("/uploads/profile-pictures/profilePicture-"))
        self.assertEqual(len(self.profile_files()), 1)

        second = self.upload_picture()
        self.assertEqual(second.status_code, 200)
        second_data = second.json()["data"]
        self.assertNotEqual(second_data["url"], first_url)
        self.assertEqual([p.name for p in self.profile_files()], [second_data["filename"]])
        self.assertEqual(self.load_user(self.user_id).profile_picture, second_data["url"])

    def test_missing_file_field(self) -> None:
        resp = self.client.post("/api/upload/profile-picture", data={"other": "x"}, headers=self.headers)
        self.assertEqual(resp.status_code, 400)

    def test_disallowed_type_writes_nothing(self) -> None:
        resp = self.upload_picture(("evil.exe", b"MZ", "application/x-msdownload"))
        self.assertEqual(resp.status_code, 400)
        self.assertIn("not allowed", resp.json()["message"])
        self.assertEqual(self.profile_files(), [])
        self.assertIsNone(self.load_user(self.user_id).profile_picture)

    def test_oversized_file_writes_nothing(self) -> None:
        resp = self.upload_picture(("big.png", b"x" * 2048, "image/png"))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.profile_files(), [])

    def test_failed_commit_removes_new_file(self) -> None:
        client = TestClient(app, raise_server_exceptions=False)
        with patch.object(Session, "commit", side_effect=SQLAlchemyError("db down")):
            resp = client.post(
                "/api/upload/profile-picture", files={"profilePicture": PNG}, headers=self.headers
            )
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"success": False, "message": "Server Error"})
        self.assertEqual(self.profile_files(), [])
        self.assertIsNone(self.load_user(self.user_id).profile_picture)

    def test_delete_profile_picture(self) -> None:
        resp = self.client.delete("/api/upload/profile-picture", headers=self.headers)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "No profile picture to delete")

        self.upload_picture()
        resp = self.client.delete("/api/upload/profile-picture", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.profile_files(), [])
        self.assertIsNone(self.load_user(self.user_id).profile_picture)

    def test_multi_file_upload(self) -> None:
        resp = self.client.post(
            "/api/upload/files",
            files=[
                ("files", PNG),
                ("files", ("doc.pdf", b"%PDF-1.4", "application/pdf")),
            ],
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        body = resp.json()
        self.assertEqual(body["message"], "2 file(s) uploaded successfully")
        items = body["data"]["files"]
        self.assertEqual([i["originalName"] for i in items], ["photo.png", "doc.pdf"])
        self.assertTrue(all(i["uploadedBy"] == self.user_id for i in items))
        self.assertEqual(len(self.general_files()), 2)
        # Uploaded files are not linked to the user record.
        self.assertIsNone(self.load_user(self.user_id).profile_picture)

    def test_too_many_files(self) -> None:
        resp = self.client.post(
            "/api/upload/files",
            files=[("files", PNG) for _ in range(6)],
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.general_files(), [])

    def test_file_info_and_delete(self) -> None:
        resp = self.client.post("/api/upload/files", files=[("files", PNG)], headers=self.headers)
        name = resp.json()["data"]["files"][0]["filename"]

        info = self.client.get(f"/api/upload/info/{name}", headers=self.headers)
        self.assertEqual(info.status_code, 200)
        self.assertEqual(info.json()["data"]["filename"], name)
        self.assertEqual(info.json()["data"]["size"], len(PNG[1]))
        self.assertEqual(info.json()["data"]["extension"], ".png")

        resp = self.client.delete(f"/api/upload/file/{name}", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.general_files(), [])
        self.assertEqual(self.client.delete(f"/api/upload/file/{name}", headers=self.headers).status_code, 404)
        self.assertEqual(self.client.get(f"/api/upload/info/{name}", headers=self.headers).status_code, 404)

    def test_traversal_names_are_rejected(self) -> None:
        secret = self.tmp / "secret"
        secret.write_text("keep me")
        for encoded in ("..%2Fsecret", "..%5Csecret"):
            with self.subTest(encoded=encoded):
                resp = self.client.delete(f"/api/upload/file/{encoded}", headers=self.headers)
                self.assertEqual(resp.status_code, 400)
                resp = self.client.get(f"/api/upload/info/{encoded}", headers=self.headers)
                self.assertEqual(resp.status_code, 400)
        self.assertEqual(secret.read_text(), "keep me")


class TestMisc(ApiTestCase):
    def test_health(self) -> None:
        resp = self.client.get("/api/health")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["status"], "ok")
        self.assertEqual(data["database"], "connected")

    def test_unknown_route_uses_error_envelope(self) -> None:
        resp = self.client.get("/api/does-not-exist")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"success": False, "message": "Not Found"})


if __name__ == "__main__":
    unittest.main()
