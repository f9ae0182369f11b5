from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import DocumentStore
from main import create_app
from schemas import Product, User


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def store():
    db = mongomock.MongoClient()["storefront_test"]
    return DocumentStore(db)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(secret_key="test-secret", bcrypt_rounds=4)


@pytest.fixture
def client(settings, store):
    app = create_app(settings=settings, store=store)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_product(store):
    def _make(name="Desk Lamp", price=500, rating=4, image=None):
        return store.insert_product(Product(product_name=name, price=price, rating=rating, image=image))
    return _make


@pytest.fixture
def make_user(store):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "email": f"ada{counter['n']}@example.com",
            "phone": f"555000{counter['n']}",
            "password": "not-a-real-hash",
        }
        data.update(overrides)
        return store.insert_user(User(**data))
    return _make


@pytest.fixture
def signup_and_login(client):
    counter = {"n": 0}

    def _go(admin=False, password="secret123"):
        counter["n"] += 1
        prefix = "admin" if admin else "users"
        body = {
            "first_name": "Grace",
            "last_name": "Hopper",
            "email": f"grace{counter['n']}@example.com",
            "phone": f"777000{counter['n']}",
            "password": password,
        }
        r = client.post(f"/api/v1/{prefix}/signup", json=body)
        assert r.status_code == 200, r.text
        r = client.post(f"/api/v1/{prefix}/login", json={"email": body["email"], "password": password})
        assert r.status_code == 200, r.text
        data = r.json()["data"]
        return {"token": data["token"]}, data["user_id"]
    return _go
