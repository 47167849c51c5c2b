import os
import tempfile

os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="uploads-"))

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import create_token, hash_password
from database import Database
from main import create_app


@pytest.fixture
def db():
    return Database(mongomock.MongoClient(), "kiransales_test")


@pytest.fixture
def client(db):
    return TestClient(create_app(db))


@pytest.fixture
def make_user(db):
    def _make(email="asha@kiransales.in", role="customer", status="active", password="secret123", **extra):
        doc = {
            "email": email,
            "password": hash_password(password),
            "firstName": extra.pop("firstName", "Asha"),
            "lastName": extra.pop("lastName", "Rao"),
            "role": role,
            "status": status,
            **extra,
        }
        doc["_id"] = db["users"].insert_one(doc).inserted_id
        return doc
    return _make


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@kiransales.in", role="admin", firstName="Store", lastName="Admin")


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {create_token(admin)}"}


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def customer_headers(customer):
    return {"Authorization": f"Bearer {create_token(customer)}"}


@pytest.fixture
def order_payload():
    return {
        "customerName": "A B",
        "customerEmail": "a@b.com",
        "items": [{"name": "X", "quantity": 1, "price": 500}],
        "totalAmount": 590,
    }
