import os

os.environ.setdefault("MONGO_TRANSACTIONS", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("MAX_LOGIN_ATTEMPTS", "3")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.pop("DATABASE_URL", None)

import mongomock
import pytest
from bson import ObjectId

import database

# Every service module binds `db` on import, so the in-memory database has to
# be in place before main is imported.
database.client = mongomock.MongoClient(tz_aware=True)
database.db = database.client["shoe_store_test"]

from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402

SHIPPING = {
    "street": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62701",
    "country": "US",
}


@pytest.fixture(autouse=True)
def clean_db():
    yield
    for name in database.db.list_collection_names():
        database.db.drop_collection(name)


@pytest.fixture
def db():
    return database.db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def _register_and_login(client, username, email, password="secret123", is_admin=False):
    res = client.post("/api/users/register", json={"username": username, "email": email, "password": password})
    assert res.status_code == 201, res.text
    user_id = res.json()["id"]
    if is_admin:
        database.db["user"].update_one({"_id": ObjectId(user_id)}, {"$set": {"is_admin": True}})
    res = client.post("/api/users/login", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return {"id": user_id, "headers": {"Authorization": f"Bearer {res.json()['token']}"}}


@pytest.fixture
def admin(client):
    return _register_and_login(client, "admin", "admin@example.com", is_admin=True)


@pytest.fixture
def shopper(client):
    return _register_and_login(client, "shopper", "shopper@example.com")


@pytest.fixture
def other_shopper(client):
    return _register_and_login(client, "other", "other@example.com")


@pytest.fixture
def catalog(client, admin):
    """A brand and a main category to hang products on."""
    brand = client.post("/api/brands", json={"name": "Stride"}, headers=admin["headers"]).json()
    category = client.post("/api/categories", json={"name": "Running Shoes"}, headers=admin["headers"]).json()
    return {"brand": brand["id"], "category": category["id"]}


@pytest.fixture
def make_product(client, admin, catalog):
    def _make(**fields):
        body = {
            "name": "Road Runner",
            "description": "Lightweight trainer",
            "price": 100,
            "stock": 10,
            "category": catalog["category"],
            "brand": catalog["brand"],
            "images": ["https://cdn.example.com/road-runner.jpg"],
        }
        body.update(fields)
        res = client.post("/api/products", json=body, headers=admin["headers"])
        assert res.status_code == 201, res.text
        return res.json()
    return _make
