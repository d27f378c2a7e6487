import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

import auth
import database
from main import app
from schemas import Role


@pytest.fixture
def db(monkeypatch):
    mock_db = AsyncMongoMockClient()["rental_marketplace_test"]
    monkeypatch.setattr(database, "_db", mock_db)
    return mock_db


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def make_user(db):
    async def _make_user(email="ana@example.com", password="secret123", role=Role.CUSTOMER, name="Ana"):
        doc = {
            "name": name,
            "email": email,
            "password": auth.hash_password(password),
            "role": role.value,
        }
        if role is Role.ENDUSER:
            doc.update(company_name="Ana Rentals", business_type="Equipment")
        doc = await database.create_document("user", doc)
        return auth.identity_of(doc)
    return _make_user


@pytest.fixture
def token_for():
    def _token_for(identity):
        return auth.issue_session_token(identity)
    return _token_for


def bearer(token):
    return {"Authorization": f"Bearer {token}"}
