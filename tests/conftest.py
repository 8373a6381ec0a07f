"""
Shared fixtures.

Every test gets its own data directory under tmp_path, so no state leaks
between tests. bcrypt runs at its minimum cost to keep the suite fast.
"""

import pytest
from fastapi.testclient import TestClient

from carts import CartStore
from config import Settings
from database import JsonStore
from main import create_app
from products import CatalogStore
from schemas import Principal, ProductCreate, Role
from security import SessionIssuer
from users import UserDirectory

TEST_SECRET = "test-secret"
ADMIN_NAME = "admin"
ADMIN_PASSWORD = "admin-pass"


def pytest_configure(config) -> None:
    config.addinivalue_line("markers", "unit: fast tests with no network")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        jwt_secret=TEST_SECRET,
        data_dir=tmp_path / "data",
        bcrypt_rounds=4,
        admin_name=ADMIN_NAME,
        admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture
def store(tmp_path) -> JsonStore:
    s = JsonStore(tmp_path / "data")
    s.ensure_dir(s.data_dir)
    return s


@pytest.fixture
def users(store) -> UserDirectory:
    directory = UserDirectory(store, bcrypt_rounds=4)
    directory.initialize()
    return directory


@pytest.fixture
def catalog(store) -> CatalogStore:
    products = CatalogStore(store)
    products.initialize()
    return products


@pytest.fixture
def carts(store) -> CartStore:
    c = CartStore(store)
    c.initialize()
    return c


@pytest.fixture
def sessions() -> SessionIssuer:
    return SessionIssuer(TEST_SECRET, expires_minutes=30)


@pytest.fixture
def admin() -> Principal:
    return Principal(id="admin1", name="root", role=Role.ADMIN)


@pytest.fixture
def customer() -> Principal:
    return Principal(id="user1", name="alice", role=Role.USER)


@pytest.fixture
def tonic(catalog):
    return catalog.create(ProductCreate(name="Tonic", cost=1, price=5))


@pytest.fixture
def client(settings) -> TestClient:
    return TestClient(create_app(settings))


def login(client: TestClient, name: str, password: str) -> dict:
    response = client.post("/api/users/login", json={"name": name, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def admin_headers(client) -> dict:
    return login(client, ADMIN_NAME, ADMIN_PASSWORD)


@pytest.fixture
def user_headers(client, admin_headers) -> dict:
    response = client.post(
        "/api/users",
        headers=admin_headers,
        json={"name": "alice", "password": "alice-pass"},
    )
    assert response.status_code == 201, response.text
    return login(client, "alice", "alice-pass")

