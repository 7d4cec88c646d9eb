from __future__ import annotations

import os
import time
import unittest

from kyve import create_app
from kyve.extensions import db
from kyve.models import User
from kyve.utils.jwt_utils import issue_session_token


class KyveAppTestCase(unittest.TestCase):
    """Fresh in-memory database per test class."""

    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri
        cls.app = create_app()
        cls.app.config.update(TESTING=True, APP_URL="https://kyve.test")
        with cls.app.app_context():
            db.create_all()
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        with cls.app.app_context():
            db.session.remove()
            db.drop_all()
        if cls._prev_db_uri is None:
            os.environ.pop("SQLALCHEMY_DATABASE_URI", None)
        else:
            os.environ["SQLALCHEMY_DATABASE_URI"] = cls._prev_db_uri
        if cls._prev_db_url is None:
            os.environ.pop("DATABASE_URL", None)
        else:
            os.environ["DATABASE_URL"] = cls._prev_db_url

    def _seed_user(self, label: str = "user") -> dict:
        suffix = str(time.time_ns())
        with self.app.app_context():
            user = User(name=f"{label.title()} {suffix[-4:]}", email=f"{label}-{suffix}@kyve.test")
            db.session.add(user)
            db.session.commit()
            return {
                "id": int(user.id),
                "email": user.email,
                "api_key": user.api_key,
                "token": issue_session_token(int(user.id)),
            }

    @staticmethod
    def _auth(user: dict, *, use_api_key: bool = False) -> dict:
        token = user["api_key"] if use_api_key else user["token"]
        return {"Authorization": f"Bearer {token}"}

    @staticmethod
    def _payload(**overrides) -> dict:
        body = {
            "productName": "iPhone 13",
            "category": "electronics",
            "logistics": "delivery",
            "amount": "1,500",
            "currency": "NGN",
            "role": "seller",
        }
        body.update(overrides)
        return body
