"""Shared pytest fixtures for the shop API tests."""

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app

ADMIN_EMAIL = "admin@shop.example"
ADMIN_PASSWORD = "AdminPass1!"


@pytest.fixture
def settings():
    return Settings(
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture
def db():
    """In-memory MongoDB database."""
    return mongomock.MongoClient().db


@pytest.fixture
def app(settings, db):
    return create_app(settings, db=db)


@pytest.fixture
def client(app):
    return TestClient(app)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def signup(client):
    """Sign a user up and return the response body."""

    def _signup(email="jane@example.com", password="Secret1!", name="Jane Doe"):
        resp = client.post("/api/signup", json={"email": email, "password": password, "name": name})
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _signup


@pytest.fixture
def user_token(signup):
    return signup()["token"]


@pytest.fixture
def admin_token(client):
    resp = client.post("/api/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


@pytest.fixture
def make_product(client, admin_token):
    """Create a product through the admin API and return it."""

    def _make(name="Desk Lamp", price=2999, category="Home", description="Dimmable LED lamp"):
        resp = client.post(
            "/api/products",
            json={"name": name, "price": price, "category": category, "description": description},
            headers=bearer(admin_token),
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _make
