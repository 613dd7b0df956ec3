"""Shared pytest fixtures for the storefront tests."""

from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from auth import hash_password
from deps import get_blob_store, get_db, get_notifier
from errors import DependencyError
from main import app
from notifier import Notifier
from schemas import ImageRef
from storage import BlobStore

PASSWORD = "testpass123"


class FakeBlobStore(BlobStore):
    """Records uploads and deletions instead of touching storage."""

    def __init__(self):
        self.uploads = []
        self.destroyed = []
        self.fail_upload = False
        self.fail_destroy = False

    def upload(self, data, filename, folder="uploads"):
        if self.fail_upload:
            raise DependencyError("Image upload failed")
        self.uploads.append((folder, filename, data))
        n = len(self.uploads)
        return ImageRef(url=f"https://blobs.example.com/{folder}/{n}.png", public_id=f"{folder}/{n}")

    def destroy(self, public_id):
        self.destroyed.append(public_id)
        if self.fail_destroy:
            raise DependencyError("Image removal failed")


class FakeNotifier(Notifier):
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, html):
        if self.fail:
            raise RuntimeError("SMTP relay down")
        self.sent.append((to, subject, html))


@pytest.fixture
def db():
    """In-memory Mongo database with the production indexes."""
    mongo = mongomock.MongoClient()["artistgrade_test"]
    database.ensure_indexes(using=mongo)
    return mongo


@pytest.fixture
def blobs():
    return FakeBlobStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def client(db, blobs, notifier):
    """Anonymous API client wired to the fixtures above."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_blob_store] = lambda: blobs
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email="shopper@example.com", username="shopper", fullname="Sam Shopper",
              role="user", is_active=True, password=PASSWORD):
    now = datetime.now(timezone.utc)
    doc = {
        "fullname": fullname,
        "username": username,
        "email": email,
        "phone": "555-0100",
        "password_hash": hash_password(password),
        "gender": None,
        "role": role,
        "is_active": is_active,
        "google_id": None,
        "picture": None,
        "created_at": now,
        "updated_at": now,
    }
    db["user"].insert_one(doc)
    return doc


def login_client(email, password=PASSWORD):
    c = TestClient(app)
    response = c.post("/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return c


@pytest.fixture
def shopper(db):
    return make_user(db)


@pytest.fixture
def admin(db):
    return make_user(db, email="admin@example.com", username="admin", fullname="Ada Admin", role="admin")


@pytest.fixture
def shopper_client(client, shopper):
    return login_client(shopper["email"])


@pytest.fixture
def admin_client(client, admin):
    return login_client(admin["email"])


def order_payload(items=None, **overrides):
    items = items if items is not None else [
        {"productId": "p1", "name": "Brush set", "price": 12.5, "quantity": 2},
        {"productId": "p2", "name": "Canvas 30x40", "price": 8.25, "quantity": 1},
    ]
    payload = {
        "fullName": "Sam Shopper",
        "email": "shopper@example.com",
        "phone": "555-0100",
        "address": "12 Easel Street",
        "city": "Pune",
        "state": "MH",
        "zip": "411001",
        "transactionId": "pay_abc123",
        "cartItems": items,
        "totalAmount": round(sum(i["price"] * i["quantity"] for i in items), 2),
    }
    payload.update(overrides)
    return payload
