from b2b_commerce.models.product import Product
from conftest import auth


def test_list_products_is_scoped_to_organization(api, seed):
    res = api.get("/api/products", headers=auth("user_member"))
    assert res.status_code == 200
    skus = [p["sku"] for p in res.json()["products"]]
    assert sorted(skus) == ["SKU-A", "SKU-B"]


def test_search_by_name_or_sku(api, seed):
    res = api.get("/api/products", params={"q": "sku-b"}, headers=auth("user_member"))
    assert [p["sku"] for p in res.json()["products"]] == ["SKU-B"]


def test_inactive_products_hidden_unless_manager_asks(api, seed, db):
    db.get(Product, seed.product_b).active = False
    db.commit()

    member = api.get("/api/products", params={"include_inactive": True}, headers=auth("user_member"))
    assert [p["sku"] for p in member.json()["products"]] == ["SKU-A"]

    manager = api.get("/api/products", params={"include_inactive": True}, headers=auth("user_manager"))
    assert len(manager.json()["products"]) == 2


def test_get_product(api, seed):
    res = api.get(f"/api/products/{seed.product_a}", headers=auth("user_member"))
    assert res.status_code == 200
    p = res.json()["product"]
    assert p["price_cents"] == 1000
    assert p["stock"] == 10


def test_product_of_another_organization_is_404(api, seed):
    res = api.get(f"/api/products/{seed.other_product}", headers=auth("user_member"))
    assert res.status_code == 404
    assert res.json()["error"] == "Product not found"
