#!/usr/bin/env python3
"""
Seed a demo organization: staff users with memberships, a couple of clients
and a product catalogue. The catalogue comes from a JSON file when given,
otherwise a built-in list is used.

Usage:
    python scripts/seed_demo.py --subdomain acme --file catalogue.json
    curl -H "Host: acme.localhost" -H "X-User-Id: demo_admin" http://127.0.0.1:8000/api/carts
"""
import argparse
import json
import os
import sys

# allow running from backend/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from b2b_commerce.db import SessionLocal, init_db
from b2b_commerce.models.organization import Organization, OrganizationMembership, User
from b2b_commerce.repositories.client_repo import ClientRepository
from b2b_commerce.repositories.product_repo import ProductRepository
from b2b_commerce.utils.logging import get_logger
from b2b_commerce.utils.transactions import unit_of_work

log = get_logger("b2b_commerce.scripts.seed_demo")

DEFAULT_PRODUCTS = [
    {"sku": "PAL-100", "name": "Shipping Pallet", "price_cents": 2450, "stock": 120},
    {"sku": "BOX-S", "name": "Carton Small (25 pk)", "price_cents": 1899, "stock": 300},
    {"sku": "BOX-L", "name": "Carton Large (10 pk)", "price_cents": 2199, "stock": 40},
    {"sku": "TAPE-48", "name": "Packing Tape 48mm", "price_cents": 399, "stock": 5},
]

DEMO_USERS = [
    ("demo_admin", "admin"),
    ("demo_manager", "manager"),
    ("demo_member", "member"),
]

DEMO_CLIENTS = [
    {
        "company_name": "Northwind Traders",
        "contact_name": "Nancy Davolio",
        "contact_email": "nancy@northwind.example.com",
        "payment_terms": "net_30",
        "shipping_address_line1": "1 Harbor Way",
        "shipping_city": "Seattle",
        "shipping_postal_code": "98101",
        "shipping_country": "US",
    },
    {
        "company_name": "Contoso Ltd",
        "contact_name": "Maria Anders",
        "contact_email": "maria@contoso.example.com",
        "payment_terms": "net_60",
    },
]


def _normalize_entry(entry):
    """sku/name/price_cents/stock from a catalogue entry; price may be given in units."""
    sku = entry.get("sku") or entry.get("id")
    name = entry.get("name") or entry.get("title") or ""
    if entry.get("price_cents") is not None:
        price_cents = int(entry["price_cents"])
    else:
        price_cents = int(round(float(entry.get("price", 0)) * 100))
    return {
        "sku": sku,
        "name": name,
        "price_cents": price_cents,
        "stock": int(entry.get("stock", entry.get("quantity", 0)) or 0),
        "description": entry.get("description") or "",
        "remote_product_id": entry.get("remote_product_id"),
    }


def load_catalogue(path):
    if not path:
        return [_normalize_entry(e) for e in DEFAULT_PRODUCTS]
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("items") or data.get("products") or list(data.values())
    return [_normalize_entry(e) for e in data if isinstance(e, dict)]


def _get_or_create_org(db, subdomain, name):
    org = db.query(Organization).filter(Organization.subdomain == subdomain).first()
    if not org:
        org = Organization(subdomain=subdomain, name=name)
        db.add(org)
        db.flush()
    return org


def _ensure_member(db, org, auth_user_id, role):
    user = db.query(User).filter(User.auth_user_id == auth_user_id).first()
    if not user:
        user = User(auth_user_id=auth_user_id, email=f"{auth_user_id}@{org.subdomain}.example.com")
        db.add(user)
        db.flush()
    membership = (
        db.query(OrganizationMembership)
        .filter(OrganizationMembership.organization_id == org.id, OrganizationMembership.user_id == user.id)
        .first()
    )
    if not membership:
        db.add(OrganizationMembership(organization_id=org.id, user_id=user.id, role=role))
    else:
        membership.role = role
    return user


def seed(subdomain, org_name, catalogue):
    db = SessionLocal()
    try:
        with unit_of_work(db):
            org = _get_or_create_org(db, subdomain, org_name)
            users = {key: _ensure_member(db, org, key, role) for key, role in DEMO_USERS}
            db.flush()

            clients = ClientRepository(db)
            for fields in DEMO_CLIENTS:
                if not clients.find_duplicate(org.id, fields["company_name"], fields["contact_email"]):
                    clients.create(org.id, users["demo_admin"].id, **fields)

            products = ProductRepository(db)
            seeded = 0
            for entry in catalogue:
                if not entry["sku"]:
                    continue
                products.create_or_update(org.id, **entry)
                seeded += 1
        log.info("seeded org=%s users=%d clients=%d products=%d", subdomain, len(users), len(DEMO_CLIENTS), seeded)
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--subdomain", default="acme")
    parser.add_argument("--name", default="Acme Supply")
    parser.add_argument("--file", "-f", default=None, help="catalogue JSON: a list of product entries")
    parser.add_argument("--reset", action="store_true", help="drop and recreate all tables first")
    args = parser.parse_args()
    if args.file and not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)
    init_db(reset=args.reset)
    seed(args.subdomain, args.name, load_catalogue(args.file))
