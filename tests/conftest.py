"""
Pytest fixtures shared across the test suite.

The repositories are swapped for in-memory fakes with the same interface so
route and placement tests run without a MongoDB server.
"""
import copy
from datetime import datetime, timezone

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from auth import create_access_token
from main import app
from repositories import (
    get_category_repository,
    get_order_repository,
    get_product_repository,
    get_user_repository,
    to_object_id,
)
from schemas import OrderIn


class InMemoryCollection:
    def __init__(self):
        self.docs = {}

    def _get(self, doc_id):
        oid = to_object_id(doc_id)
        if oid is None or oid not in self.docs:
            return None
        return copy.deepcopy(self.docs[oid])

    def _insert(self, data):
        now = datetime.now(timezone.utc)
        doc = dict(copy.deepcopy(data), _id=ObjectId(), created_at=now, updated_at=now)
        self.docs[doc["_id"]] = doc
        return copy.deepcopy(doc)

    def _newest_first(self, docs):
        return sorted(docs, key=lambda d: d["created_at"], reverse=True)


class InMemoryProductRepository(InMemoryCollection):
    def add(self, name="Leather Wallet", price=10.0, inventory=5, **extra):
        data = {
            "name": name,
            "description": "A product used in tests",
            "price": price,
            "category": extra.pop("category", "cat-1"),
            "inventory": inventory,
            "is_published": True,
        }
        data.update(extra)
        return self._insert(data)

    def inventory_of(self, product):
        return self.docs[product["_id"]]["inventory"]

    def find_by_id(self, product_id):
        return self._get(product_id)

    def find_published(self, category=None, limit=50):
        docs = [d for d in self.docs.values() if d.get("is_published")]
        if category:
            docs = [d for d in docs if d.get("category") == category]
        return copy.deepcopy(self._newest_first(docs)[:limit])

    def exists_in_category(self, category_id):
        return any(d.get("category") == category_id for d in self.docs.values())

    def insert(self, data):
        return self._insert(data)

    def save(self, product_id, changes):
        oid = to_object_id(product_id)
        if oid not in self.docs:
            return None
        self.docs[oid].update(copy.deepcopy(changes))
        return copy.deepcopy(self.docs[oid])

    def decrement_inventory(self, product_id, quantity):
        oid = to_object_id(product_id)
        doc = self.docs.get(oid)
        if doc is None or doc["inventory"] < quantity:
            return None
        doc["inventory"] -= quantity
        return copy.deepcopy(doc)

    def delete(self, product_id):
        oid = to_object_id(product_id)
        return self.docs.pop(oid, None) is not None


class InMemoryOrderRepository(InMemoryCollection):
    def insert(self, order):
        return self._insert(order)

    def find_by_id(self, order_id):
        return self._get(order_id)

    def find_by_user(self, user_id, limit=50):
        docs = [d for d in self.docs.values() if d["user_id"] == user_id]
        return copy.deepcopy(self._newest_first(docs)[:limit])

    def find_all(self, status=None, limit=50):
        docs = [d for d in self.docs.values() if status is None or d["status"] == status]
        return copy.deepcopy(self._newest_first(docs)[:limit])

    def update_status(self, order_id, status, tracking_number=None):
        oid = to_object_id(order_id)
        if oid not in self.docs:
            return None
        self.docs[oid]["status"] = status
        if tracking_number:
            self.docs[oid]["tracking_number"] = tracking_number
        return copy.deepcopy(self.docs[oid])


class InMemoryCategoryRepository(InMemoryCollection):
    def find_active(self):
        return copy.deepcopy([d for d in self.docs.values() if d.get("is_active", True)])

    def find_by_id(self, category_id):
        return self._get(category_id)

    def find_by_id_or_slug(self, id_or_slug):
        if ObjectId.is_valid(id_or_slug):
            return self._get(id_or_slug)
        for doc in self.docs.values():
            if doc["slug"] == id_or_slug:
                return copy.deepcopy(doc)
        return None

    def slug_taken(self, slug, exclude_id=None):
        excluded = to_object_id(exclude_id) if exclude_id is not None else None
        return any(d["slug"] == slug and d["_id"] != excluded for d in self.docs.values())

    def has_children(self, category_id):
        return any(d.get("parent") == category_id for d in self.docs.values())

    def insert(self, data):
        return self._insert(data)

    def update(self, category_id, fields):
        oid = to_object_id(category_id)
        if oid not in self.docs:
            return None
        self.docs[oid].update(fields)
        return copy.deepcopy(self.docs[oid])

    def delete(self, category_id):
        oid = to_object_id(category_id)
        return self.docs.pop(oid, None) is not None


class InMemoryUserRepository(InMemoryCollection):
    def add(self, name, email, role="user"):
        return self._insert({"name": name, "email": email, "role": role, "password": "hashed"})

    def find_by_id(self, user_id):
        doc = self._get(user_id)
        if doc is not None:
            doc.pop("password", None)
        return doc


@pytest.fixture
def product_repo():
    return InMemoryProductRepository()


@pytest.fixture
def order_repo():
    return InMemoryOrderRepository()


@pytest.fixture
def category_repo():
    return InMemoryCategoryRepository()


@pytest.fixture
def user_repo():
    return InMemoryUserRepository()


@pytest.fixture
def customer(user_repo):
    return user_repo.add("Jane Buyer", "jane@example.com")


@pytest.fixture
def admin(user_repo):
    return user_repo.add("Store Admin", "admin@example.com", role="admin")


@pytest.fixture
def customer_headers(customer):
    return {"Authorization": f"Bearer {create_access_token(str(customer['_id']))}"}


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {create_access_token(str(admin['_id']))}"}


@pytest.fixture
def client(product_repo, order_repo, category_repo, user_repo):
    """
    TestClient wired to the in-memory repositories.

    Scope: function (fresh repositories per test)
    """
    app.dependency_overrides[get_product_repository] = lambda: product_repo
    app.dependency_overrides[get_order_repository] = lambda: order_repo
    app.dependency_overrides[get_category_repository] = lambda: category_repo
    app.dependency_overrides[get_user_repository] = lambda: user_repo
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def shipping_address():
    return {
        "name": "Jane Buyer",
        "street": "1 Main Street",
        "city": "Springfield",
        "postal_code": "12345",
        "country": "US",
    }


@pytest.fixture
def make_order(shipping_address):
    """Build an OrderIn from (product or raw id, quantity) pairs."""
    def _make(*lines, payment_method="credit_card", notes=None):
        return OrderIn(
            items=[{"product_id": str(p["_id"]) if isinstance(p, dict) else p, "quantity": q} for p, q in lines],
            shipping_address=shipping_address,
            payment_method=payment_method,
            notes=notes,
        )
    return _make
