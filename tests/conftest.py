import os

import pytest
from fastapi.testclient import TestClient

from eventbook.dependencies import get_store
from eventbook.main import app
from eventbook.seat_map import InMemorySeatMapStore

# Cheapest bcrypt work factor; registrations happen in most tests
os.environ.setdefault("BCRYPT_ROUNDS", "4")

PASSWORD = "secret123"


@pytest.fixture
def store():
    """A fresh in-memory seat map store per test"""
    return InMemorySeatMapStore()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, name, email):
    response = client.post("/api/auth/register", json={
        "firstName": name,
        "lastName": "Tester",
        "email": email,
        "phone": "555-0100",
        "password": PASSWORD,
    })
    assert response.status_code == 201
    data = response.json()["data"]
    return {
        "user": data["user"],
        "token": data["token"],
        "headers": {"Authorization": f"Bearer {data['token']}"},
    }


@pytest.fixture
def password():
    """Password every test user registers with"""
    return PASSWORD


@pytest.fixture
def make_user(client):
    """Register a user through the API; returns user, token and auth headers"""
    return lambda name, email: register(client, name, email)


@pytest.fixture
def admin(client, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", "admin@example.com")
    return register(client, "Admin", "admin@example.com")


@pytest.fixture
def alice(client):
    return register(client, "Alice", "alice@example.com")


@pytest.fixture
def bob(client):
    return register(client, "Bob", "bob@example.com")


@pytest.fixture
def event_data():
    return {
        "title": "Jazz Night",
        "description": "An evening of live jazz",
        "category": "Music",
        "date": "2030-06-01T20:00:00",
        "time": "20:00",
        "location": "Blue Room",
        "price": 25.0,
        "capacity": 3,
    }


@pytest.fixture
def event(client, admin, event_data):
    """A three seat event created through the admin API"""
    response = client.post("/api/events", json=event_data, headers=admin["headers"])
    assert response.status_code == 201
    return response.json()["data"]["event"]
