import base64

import pytest
from fastapi.testclient import TestClient

from database import MemStorage, get_db
from main import app


def _basic_auth(username: str, password: str) -> dict:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


@pytest.fixture
def storage():
    return MemStorage()


@pytest.fixture
def empty_storage():
    return MemStorage(seed=False)


@pytest.fixture
def client(storage):
    app.dependency_overrides[get_db] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def basic_auth():
    return _basic_auth


@pytest.fixture
def admin_headers():
    return _basic_auth("admin", "admin123")
