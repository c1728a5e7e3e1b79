import unittest
from datetime import timedelta

from auth_client import AuthClient
from models import AuthUser, Profile, RefreshToken, ROLE_ADMIN, utcnow
from tests.support import ApiTestCase, DEPARTMENT_CODE, PASSWORD


class RegisterTests(ApiTestCase):
    def register(self, **overrides):
        body = {
            "email": "jan@osp.pl",
            "password": PASSWORD,
            "fire_department_id": self.department_id,
            "department_code": DEPARTMENT_CODE,
            "first_name": "Jan",
            "last_name": "Kowalski",
        }
        body.update(overrides)
        return self.client.post("/api/auth/register", json=body)

    def test_register_with_department_code_creates_member(self):
        response = self.register()
        self.assertEqual(response.status_code, 201, response.text)

        data = response.json()["data"]
        self.assertEqual(data["user"]["email"], "jan@osp.pl")
        self.assertEqual(data["profile"]["role"], "member")
        self.assertEqual(data["profile"]["fire_department_id"], self.department_id)
        self.assertEqual(data["session"]["token_type"], "bearer")
        self.assertEqual(data["session"]["expires_in"], 3600)

        with self.Session() as db:
            profile = db.query(Profile).filter(Profile.id == data["user"]["id"]).one()
            self.assertEqual(profile.first_name, "Jan")

    def test_register_by_department_name(self):
        response = self.register(fire_department_id=None, fire_department_name="osp leszno",
                                 department_code=None)
        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(response.json()["data"]["profile"]["fire_department_id"], self.other_department_id)

    def test_wrong_department_code(self):
        self.assertError(self.register(department_code="WRONG"), 403, "INVALID_DEPARTMENT_CODE")

    def test_elevated_role_needs_code(self):
        response = self.register(fire_department_id=self.other_department_id, department_code=None,
                                 role="admin")
        self.assertError(response, 403, "FORBIDDEN")

        response = self.register(email="anna@osp.pl", role="commander")
        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(response.json()["data"]["profile"]["role"], "commander")

    def test_unknown_department(self):
        response = self.register(fire_department_id="00000000-0000-4000-8000-000000000000")
        self.assertError(response, 404, "FIRE_DEPARTMENT_NOT_FOUND")

    def test_duplicate_email(self):
        self.register()
        self.assertError(self.register(email="JAN@osp.pl"), 409, "EMAIL_ALREADY_EXISTS")

    def test_validation_errors(self):
        error = self.assertError(self.register(email="nope", password="weak"), 400, "VALIDATION_ERROR")
        self.assertIn("email", error["details"])
        self.assertIn("password", error["details"])

    def test_invalid_json(self):
        response = self.client.post("/api/auth/register", content="{broken",
                                    headers={"Content-Type": "application/json"})
        error = self.assertError(response, 400, "VALIDATION_ERROR")
        self.assertEqual(error["message"], "Invalid JSON in request body")

    def test_rate_limited_after_three_attempts(self):
        for i in range(3):
            self.register(email=f"user{i}@osp.pl")

        response = self.register(email="user9@osp.pl")
        error = self.assertError(response, 429, "TOO_MANY_REQUESTS")
        self.assertGreater(error["details"]["retry_after"], 0)
        self.assertEqual(response.headers["retry-after"], str(error["details"]["retry_after"]))


class LoginTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.user_id, _ = self.create_user("jan@osp.pl")

    def login(self, password=PASSWORD, email="jan@osp.pl"):
        return self.client.post("/api/auth/login", json={"email": email, "password": password})

    def test_login(self):
        response = self.login(email=" Jan@OSP.pl ")
        self.assertEqual(response.status_code, 200, response.text)
        data = response.json()["data"]
        self.assertEqual(data["user"]["id"], self.user_id)
        self.assertTrue(data["session"]["access_token"])
        self.assertTrue(data["session"]["refresh_token"])

    def test_wrong_password(self):
        self.assertError(self.login("Zlehaslo1!"), 401, "INVALID_CREDENTIALS")

    def test_unknown_user(self):
        self.assertError(self.login(email="nikt@osp.pl"), 401, "INVALID_CREDENTIALS")

    def test_rate_limited(self):
        for _ in range(5):
            self.login("Zlehaslo1!")
        self.assertError(self.login(), 429, "TOO_MANY_REQUESTS")

    def test_forwarded_ips_are_limited_separately(self):
        for _ in range(5):
            self.login("Zlehaslo1!")
        response = self.client.post("/api/auth/login", json={"email": "jan@osp.pl", "password": PASSWORD},
                                    headers={"X-Forwarded-For": "10.1.1.1"})
        self.assertEqual(response.status_code, 200)


class SessionTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.create_user("jan@osp.pl")
        response = self.client.post("/api/auth/login", json={"email": "jan@osp.pl", "password": PASSWORD})
        self.session = response.json()["data"]["session"]

    def refresh(self, token):
        return self.client.post("/api/auth/refresh", json={"refresh_token": token})

    def test_refresh_rotates_token(self):
        response = self.refresh(self.session["refresh_token"])
        self.assertEqual(response.status_code, 200, response.text)
        new_session = response.json()["data"]["session"]
        self.assertNotEqual(new_session["refresh_token"], self.session["refresh_token"])

        self.assertError(self.refresh(self.session["refresh_token"]), 401, "INVALID_REFRESH_TOKEN")
        self.assertEqual(self.refresh(new_session["refresh_token"]).status_code, 200)

    def test_refresh_unknown_or_missing(self):
        self.assertError(self.refresh("nope"), 401, "INVALID_REFRESH_TOKEN")
        self.assertError(self.client.post("/api/auth/refresh", json={}), 400, "VALIDATION_ERROR")

    def test_expired_refresh_token(self):
        with self.Session() as db:
            record = db.query(RefreshToken).filter(RefreshToken.token == self.session["refresh_token"]).one()
            record.expires_at = utcnow() - timedelta(seconds=1)
            db.commit()
        self.assertError(self.refresh(self.session["refresh_token"]), 401, "INVALID_REFRESH_TOKEN")

    def test_logout_revokes_refresh_tokens(self):
        response = self.client.post("/api/auth/logout", headers=self.bearer(self.session["access_token"]))
        self.assertEqual(response.status_code, 200, response.text)
        self.assertIsNone(response.json()["data"])
        self.assertError(self.refresh(self.session["refresh_token"]), 401, "INVALID_REFRESH_TOKEN")

    def test_logout_requires_token(self):
        self.assertError(self.client.post("/api/auth/logout"), 401, "UNAUTHORIZED")
        response = self.client.post("/api/auth/logout", headers=self.bearer("garbage"))
        self.assertError(response, 401, "UNAUTHORIZED")


class ProfileTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.user_id, self.token = self.create_user("jan@osp.pl")

    def test_get_profile(self):
        response = self.client.get("/api/auth/profile", headers=self.bearer(self.token))
        self.assertEqual(response.status_code, 200, response.text)
        data = response.json()["data"]
        self.assertEqual(data["user"]["email"], "jan@osp.pl")
        department = data["profile"]["fire_department"]
        self.assertEqual(department["name"], "OSP Izabelin")
        self.assertEqual(department["county"]["province"]["name"], "mazowieckie")

    def test_update_profile(self):
        response = self.client.patch("/api/auth/profile", headers=self.bearer(self.token),
                                     json={"first_name": "  <Anna>  "})
        self.assertEqual(response.status_code, 200, response.text)
        profile = response.json()["data"]["profile"]
        self.assertEqual(profile["first_name"], "Anna")
        self.assertEqual(profile["last_name"], "Kowalski")

    def test_update_profile_requires_a_field(self):
        response = self.client.patch("/api/auth/profile", headers=self.bearer(self.token), json={})
        self.assertError(response, 400, "VALIDATION_ERROR")

    def test_deleted_user_token(self):
        with self.Session() as db:
            AuthClient(db).admin_delete_user(self.user_id)
        response = self.client.get("/api/auth/profile", headers=self.bearer(self.token))
        self.assertError(response, 401, "UNAUTHORIZED")


class PasswordTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.user_id, self.token = self.create_user("jan@osp.pl")

    def login_status(self, password):
        return self.client.post("/api/auth/login", json={"email": "jan@osp.pl", "password": password}).status_code

    def test_change_password(self):
        response = self.client.post("/api/auth/change-password", headers=self.bearer(self.token),
                                    json={"current_password": PASSWORD, "new_password": "NoweHaslo9#"})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(self.login_status("NoweHaslo9#"), 200)
        self.assertEqual(self.login_status(PASSWORD), 401)

    def test_change_password_wrong_current(self):
        response = self.client.post("/api/auth/change-password", headers=self.bearer(self.token),
                                    json={"current_password": "Zlehaslo1!", "new_password": "NoweHaslo9#"})
        self.assertError(response, 400, "INVALID_CURRENT_PASSWORD")

    def test_forgot_password_does_not_reveal_accounts(self):
        known = self.client.post("/api/auth/forgot-password", json={"email": "jan@osp.pl"})
        unknown = self.client.post("/api/auth/forgot-password", json={"email": "nikt@osp.pl"})
        self.assertEqual(known.status_code, 200)
        self.assertEqual(known.json(), unknown.json())

        with self.Session() as db:
            user = db.query(AuthUser).filter(AuthUser.id == self.user_id).one()
            self.assertIsNotNone(user.recovery_token_hash)

    def test_forgot_password_validates_email(self):
        self.assertError(self.client.post("/api/auth/forgot-password", json={}), 400, "VALIDATION_ERROR")

    def test_reset_password_with_token(self):
        with self.Session() as db:
            token = AuthClient(db).reset_password_for_email("jan@osp.pl")

        response = self.client.post("/api/auth/reset-password", json={"token": token, "password": "NoweHaslo9#"})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(self.login_status("NoweHaslo9#"), 200)

        # Single use
        response = self.client.post("/api/auth/reset-password", json={"token": token, "password": "InneHaslo9#"})
        self.assertError(response, 400, "INVALID_RESET_TOKEN")

    def test_reset_password_expired_token(self):
        with self.Session() as db:
            client = AuthClient(db)
            token = client.reset_password_for_email("jan@osp.pl")
            user = db.query(AuthUser).filter(AuthUser.id == self.user_id).one()
            user.recovery_sent_at = utcnow() - timedelta(hours=2)
            db.commit()

        response = self.client.post("/api/auth/reset-password", json={"token": token, "password": "NoweHaslo9#"})
        self.assertError(response, 400, "INVALID_RESET_TOKEN")

    def test_reset_password_weak_password(self):
        response = self.client.post("/api/auth/reset-password", json={"token": "x", "password": "weak"})
        self.assertError(response, 400, "VALIDATION_ERROR")


class AdminRoleRegistrationTests(ApiTestCase):
    def test_seeded_admin_role_is_kept(self):
        user_id, token = self.create_user("admin@osp.pl", role=ROLE_ADMIN)
        response = self.client.get("/api/auth/profile", headers=self.bearer(token))
        self.assertEqual(response.json()["data"]["profile"]["role"], "admin")


if __name__ == "__main__":
    unittest.main()
