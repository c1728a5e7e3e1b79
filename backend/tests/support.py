"""
Shared fixtures: in-memory SQLite database wired into the app through
dependency_overrides, a seeded reference hierarchy and user helpers.
"""

import unittest

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth_client import AuthClient
from database import Base, get_db
from main import app
from models import County, FireDepartment, Province, ROLE_MEMBER
from rate_limiter import rate_limiter

PASSWORD = "Haslo123!"
DEPARTMENT_CODE = "IZA-2024"


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(bind=self.engine)
        self.Session = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

        def override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        rate_limiter.reset_all()
        self.client = TestClient(app)

        with self.Session() as db:
            province = Province(name="mazowieckie")
            db.add(province)
            db.flush()
            county = County(name="warszawski zachodni", province_id=province.id)
            db.add(county)
            db.flush()
            izabelin = FireDepartment(name="OSP Izabelin", county_id=county.id,
                                      verification_code=DEPARTMENT_CODE)
            leszno = FireDepartment(name="OSP Leszno", county_id=county.id)
            db.add_all([izabelin, leszno])
            db.commit()
            self.province_id = province.id
            self.county_id = county.id
            self.department_id = izabelin.id
            self.other_department_id = leszno.id

    def tearDown(self):
        app.dependency_overrides.clear()
        rate_limiter.reset_all()
        Base.metadata.drop_all(bind=self.engine)
        self.engine.dispose()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def create_user(self, email, role=ROLE_MEMBER, department_id="default", first_name="Jan",
                    last_name="Kowalski"):
        """Creates a user straight through AuthClient; returns (user_id, access_token)."""
        if department_id == "default":
            department_id = self.department_id
        with self.Session() as db:
            auth = AuthClient(db).sign_up(email, PASSWORD, {
                "fire_department_id": department_id,
                "first_name": first_name,
                "last_name": last_name,
                "role": role,
            })
            return auth.user.id, auth.session["access_token"]

    @staticmethod
    def bearer(token):
        return {"Authorization": f"Bearer {token}"}

    def assertError(self, response, status_code, code):
        self.assertEqual(response.status_code, status_code, response.text)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["error"]["code"], code)
        return payload["error"]
