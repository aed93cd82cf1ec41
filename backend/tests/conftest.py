from types import SimpleNamespace

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from database import get_db
from main import app
from utils.errors import AuthenticationError
from utils.security import get_current_user, get_optional_user
from utils.side_effects import outbox


@pytest.fixture
def db():
    return AsyncMongoMockClient()["marketplace_test"]


@pytest.fixture(autouse=True)
def clean_outbox():
    outbox.clear()
    yield
    outbox.clear()


def _user(role: str, email: str, **extra) -> dict:
    return {"_id": ObjectId(), "role": role, "email": email, **extra}


@pytest.fixture
async def world(db):
    """Users and a small catalog: vendor A sells two products, vendor B one."""
    admin = _user("admin", "admin@example.com")
    customer = _user("customer", "buyer@example.com")
    other_customer = _user("customer", "someone@example.com")
    vendor_a = _user("company", "vendor-a@example.com", vendor_status="approved")
    vendor_b = _user("company", "vendor-b@example.com", vendor_status="approved")

    await db.users.insert_many([admin, customer, other_customer, vendor_a, vendor_b])

    mug = {"_id": ObjectId(), "name": "Mug", "price": 10.0, "seller_id": vendor_a["_id"]}
    plate = {"_id": ObjectId(), "name": "Plate", "price": 5.0, "seller_id": vendor_a["_id"]}
    lamp = {"_id": ObjectId(), "name": "Lamp", "price": 20.0, "seller_id": vendor_b["_id"]}
    await db.products.insert_many([mug, plate, lamp])

    return SimpleNamespace(
        admin=admin,
        customer=customer,
        other_customer=other_customer,
        vendor_a=vendor_a,
        vendor_b=vendor_b,
        mug=mug,
        plate=plate,
        lamp=lamp,
    )


@pytest.fixture
def api(db):
    """
    api(user) returns an AsyncClient acting as `user` (None for anonymous)
    against the in-memory database.
    """

    def factory(user: dict | None = None) -> AsyncClient:
        async def current_user():
            if user is None:
                raise AuthenticationError("Unauthorized - No access token provided")
            return user

        async def optional_user():
            return user

        app.dependency_overrides[get_db] = lambda: db
        app.dependency_overrides[get_current_user] = current_user
        app.dependency_overrides[get_optional_user] = optional_user
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    yield factory
    app.dependency_overrides.clear()


def order_payload(*lines, email="buyer@example.com", country="US", discount=0) -> dict:
    return {
        "first_name": "Ada",
        "last_name": "Buyer",
        "address": "1 Main St",
        "city": "Springfield",
        "country": country,
        "phone": "555-0100",
        "email": email,
        "items": [{"product_id": str(product["_id"]), "quantity": qty} for product, qty in lines],
        "payment_method": "COD",
        "discount": discount,
    }
