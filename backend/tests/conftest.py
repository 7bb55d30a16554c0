import os
import tempfile
from types import SimpleNamespace

# settings are read at import time: point the app at a throwaway sqlite file first
_TMP_DIR = tempfile.mkdtemp(prefix="b2b_commerce_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["COMMERCE_BACKEND_URL"] = ""

import pytest
from fastapi.testclient import TestClient

from b2b_commerce.adapters.mock_commerce import MockCommerceBackend
from b2b_commerce.api.deps import get_commerce_backend
from b2b_commerce.db import SessionLocal, init_db
from b2b_commerce.main import app
from b2b_commerce.models.client import Client
from b2b_commerce.models.organization import Organization, OrganizationMembership, User
from b2b_commerce.models.product import Product

BASE_URL = "http://acme.example.com"


def auth(user: str) -> dict:
    return {"X-User-Id": user}


@pytest.fixture(autouse=True)
def fresh_db():
    init_db(reset=True)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def api():
    return TestClient(app, base_url=BASE_URL)


@pytest.fixture
def mock_backend():
    backend = MockCommerceBackend()
    app.dependency_overrides[get_commerce_backend] = lambda: backend
    return backend


def make_product(db, org_id, sku, name, price_cents, stock, active=True, remote_product_id=None):
    p = Product(
        organization_id=org_id,
        sku=sku,
        name=name,
        description=f"{name} description",
        price_cents=price_cents,
        stock=stock,
        active=active,
        remote_product_id=remote_product_id,
    )
    db.add(p)
    db.commit()
    return p.id


@pytest.fixture
def seed(db):
    """
    Two organizations (acme, globex); acme has an admin, a manager and two
    members; an outsider user has no membership anywhere. Acme has one
    client and two products ($10.00 x10 and $15.00 x5).
    """
    acme = Organization(name="Acme Supply", subdomain="acme")
    globex = Organization(name="Globex", subdomain="globex")
    db.add_all([acme, globex])
    db.flush()

    users = {}
    for key, role in (
        ("user_admin", "admin"),
        ("user_manager", "manager"),
        ("user_member", "member"),
        ("user_member2", "member"),
        ("user_outsider", None),
    ):
        u = User(auth_user_id=key, email=f"{key}@acme.example.com", first_name=key)
        db.add(u)
        db.flush()
        users[key] = u.id
        if role:
            db.add(OrganizationMembership(organization_id=acme.id, user_id=u.id, role=role))

    client = Client(
        organization_id=acme.id,
        company_name="Northwind Traders",
        contact_name="Nancy Davolio",
        contact_email="nancy@northwind.example.com",
        contact_phone="555-0100",
        shipping_address_line1="1 Harbor Way",
        shipping_city="Seattle",
        shipping_state="WA",
        shipping_postal_code="98101",
        shipping_country="US",
    )
    other_client = Client(
        organization_id=globex.id,
        company_name="Globex Client",
        contact_name="Hank Scorpio",
        contact_email="hank@globex.example.com",
    )
    db.add_all([client, other_client])
    db.commit()

    ns = SimpleNamespace(
        org_id=acme.id,
        other_org_id=globex.id,
        users=users,
        client_id=client.id,
        other_client_id=other_client.id,
    )
    ns.product_a = make_product(db, acme.id, "SKU-A", "Widget A", 1000, 10)
    ns.product_b = make_product(db, acme.id, "SKU-B", "Widget B", 1500, 5)
    ns.other_product = make_product(db, globex.id, "SKU-G", "Globex Gizmo", 500, 10)
    return ns


def new_cart(api, seed, user="user_member") -> int:
    res = api.post("/api/carts", json={"client_id": seed.client_id}, headers=auth(user))
    assert res.status_code in (200, 201), res.text
    return res.json()["cart"]["id"]


def add_line(api, cart_id, product_id, quantity, user="user_member"):
    return api.post(
        f"/api/carts/{cart_id}/items",
        json={"product_id": product_id, "quantity": quantity},
        headers=auth(user),
    )
