"""Pytest fixtures for store backend tests."""

import json
import secrets
from datetime import datetime, timedelta, timezone

import httpx
import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from payments import RazorpayGateway, sign

TEST_SECRET = "test_key_secret"


class FakeRazorpay:
    """httpx.MockTransport handler standing in for api.razorpay.com."""

    def __init__(self):
        self.requests = []
        self.fail_status = None
        self.raw_body = None
        self.created = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raw_body is not None:
            return httpx.Response(200, content=self.raw_body)
        if self.fail_status:
            return httpx.Response(self.fail_status, json={"error": {"description": "gateway down"}})
        if request.method == "POST" and request.url.path.endswith("/orders"):
            self.created += 1
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "id": f"order_test{self.created}",
                "entity": "order",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
            })
        if request.method == "GET" and "/payments/" in request.url.path:
            payment_id = request.url.path.rsplit("/", 1)[1]
            return httpx.Response(200, json={"id": payment_id, "status": "captured"})
        return httpx.Response(404, json={"error": {"description": "not found"}})


@pytest.fixture
def settings():
    return Settings(razorpay_key_id="rzp_test_key", razorpay_key_secret=TEST_SECRET)


@pytest.fixture
def db():
    """A fresh in-memory Mongo database."""
    return mongomock.MongoClient().db


@pytest.fixture
def razorpay():
    return FakeRazorpay()


@pytest.fixture
def gateway(settings, razorpay):
    client = httpx.Client(base_url=settings.razorpay_api_url, transport=httpx.MockTransport(razorpay))
    return RazorpayGateway(settings, client=client)


@pytest.fixture
def make_product(db):
    """Insert a catalog product and return its id as a string."""

    def _make(name="Test Product", price=100.0, stock=10, **extra):
        doc = {
            "name": name,
            "image": f"/images/{name.lower().replace(' ', '-')}.jpg",
            "brand": "Acme",
            "category": "General",
            "description": "A product",
            "price": price,
            "countInStock": stock,
            "sizes": [],
            "colors": [],
            **extra,
        }
        return str(db["product"].insert_one(doc).inserted_id)

    return _make


@pytest.fixture
def make_user(db):
    """Insert a logged-in user; returns (user_doc, auth headers)."""

    def _make(email="shopper@example.com", is_admin=False):
        token = secrets.token_urlsafe(16)
        doc = {
            "name": email.split("@")[0],
            "email": email,
            "isAdmin": is_admin,
            "token": token,
            "token_expires": datetime.now(timezone.utc) + timedelta(days=1),
        }
        doc["_id"] = db["user"].insert_one(doc).inserted_id
        return doc, {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def api_client(db, settings, gateway):
    """Test client wired to the in-memory database and fake gateway."""
    from main import app, get_db, get_gateway, get_settings

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def signature_for():
    def _sign(order_id, payment_id):
        return sign(order_id, payment_id, TEST_SECRET)

    return _sign


