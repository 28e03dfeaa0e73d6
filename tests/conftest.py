"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os
import tempfile
import uuid

import pytest

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")

# File-backed SQLite shared by every TestClient event loop in the session
_db_dir = tempfile.mkdtemp(prefix="shoplist-tests-")
os.environ.setdefault("DATABASE__URL", f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'test.db')}")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("REALTIME_BROKER", "inmemory")
os.environ.setdefault("REALTIME_INTERNAL_TOKEN", "internal-test-token")


@pytest.fixture
def client():
    """TestClient with lifespan: tables and realtime services are initialized."""
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def realtime(client):
    return client.app.state.realtime_service


@pytest.fixture
def make_user(client):
    """Register and log in a fresh user; returns id, username and auth headers."""

    def _make(prefix: str = "user") -> dict:
        username = f"{prefix}_{uuid.uuid4().hex[:8]}"
        password = "password123"
        resp = client.post(
            "/api/v1/users/register",
            json={"username": username, "email": f"{username}@example.com", "password": password},
        )
        assert resp.status_code == 201, resp.text
        user_id = resp.json()["data"]["id"]
        token_resp = client.post("/api/v1/users/login", data={"username": username, "password": password})
        assert token_resp.status_code == 200, token_resp.text
        token = token_resp.json()["access_token"]
        return {
            "id": user_id,
            "username": username,
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _make


@pytest.fixture
def make_list(client):
    def _make(owner: dict, title: str = "Groceries") -> int:
        resp = client.post("/api/v1/lists", json={"title": title}, headers=owner["headers"])
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]["id"]

    return _make
