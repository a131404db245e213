"""Pytest fixtures: an in-memory store seeded with a small catalog and three callers."""
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront.core.security import create_token
from storefront.main import create_app
from storefront.models.records import Caller, Product, Role, User
from storefront.services.orders_service import OrderWorkflow
from storefront.store import Store, memory_store


@pytest.fixture
def store() -> Store:
    return memory_store()


@pytest.fixture
def products(store):
    catalog = {
        "phone": Product(name="Phone", price=Decimal("100"), category="Electronics", stock=5),
        "cable": Product(name="Cable", price=Decimal("19.99"), category="Electronics", stock=50),
        "lamp": Product(name="Lamp", price=Decimal("45.50"), category="Home", stock=1),
        "retired": Product(name="Retired Radio", price=Decimal("80"), category="Electronics", stock=10, is_active=False),
    }
    for product in catalog.values():
        store.products.insert(product)
    return catalog


@pytest.fixture
def users(store):
    accounts = {
        "alice": User(name="Alice", email="alice@example.com", password_hash="-"),
        "bob": User(name="Bob", email="bob@example.com", password_hash="-"),
        "admin": User(name="Admin", email="admin@example.com", password_hash="-", role=Role.ADMIN),
    }
    for user in accounts.values():
        store.users.insert(user)
    return accounts


@pytest.fixture
def alice(users) -> Caller:
    return Caller(user_id=users["alice"].id)


@pytest.fixture
def bob(users) -> Caller:
    return Caller(user_id=users["bob"].id)


@pytest.fixture
def admin(users) -> Caller:
    return Caller(user_id=users["admin"].id, role=Role.ADMIN)


@pytest.fixture
def workflow(store) -> OrderWorkflow:
    return OrderWorkflow(store, shipping_fee=Decimal("10"))


@pytest.fixture
def shipping():
    return {"name": "Alice", "phone": "13800000000", "address": "1 Main St", "city": "Shanghai"}


@pytest.fixture
def client(store) -> TestClient:
    return TestClient(create_app(store))


@pytest.fixture
def headers(users):
    def _headers(name: str):
        user = users[name]
        return {"Authorization": f"Bearer {create_token(user.id, user.role.value)}"}
    return _headers
