from b2b_commerce.adapters.mock_commerce import MockCommerceBackend
from b2b_commerce.models.cart import Cart
from b2b_commerce.models.client import Client
from b2b_commerce.services.remote_sync_service import RemoteSyncService, split_contact_name
from conftest import add_line, auth, make_product, new_cart


def remote_product(db, seed, mock_backend, sku="SKU-R", local_price=2000, remote_price=2000, stock=20):
    pid = make_product(db, seed.org_id, sku, f"Remote {sku}", local_price, stock, remote_product_id=f"prod_{sku}")
    mock_backend.register_product(f"prod_{sku}", remote_price)
    return pid


def get_cart(api, cart_id):
    return api.get(f"/api/carts/{cart_id}", headers=auth("user_member")).json()["cart"]


def test_new_cart_is_mirrored_in_usd_region(api, seed, mock_backend):
    cart = get_cart(api, new_cart(api, seed))
    remote = mock_backend.carts[cart["remote_cart_id"]]
    assert remote["region_id"] == "reg_usd"
    assert remote["metadata"]["b2b_cart"] is True
    assert remote["metadata"]["cart_id"] == cart["id"]
    assert remote["metadata"]["client_company_name"] == "Northwind Traders"


def test_mirror_failure_leaves_cart_usable(api, seed, mock_backend):
    mock_backend.fail_on.add("create_cart")
    cart_id = new_cart(api, seed)
    assert get_cart(api, cart_id)["remote_cart_id"] is None
    assert add_line(api, cart_id, seed.product_a, 1).status_code == 201


def test_lines_are_mirrored_with_absolute_quantities(api, seed, db, mock_backend):
    pid = remote_product(db, seed, mock_backend)
    cart_id = new_cart(api, seed)

    add_line(api, cart_id, pid, 1)
    add_line(api, cart_id, pid, 2)

    cart = get_cart(api, cart_id)
    item = cart["items"][0]
    remote = mock_backend.carts[cart["remote_cart_id"]]
    assert len(remote["items"]) == 1
    assert remote["items"][0]["id"] == item["remote_line_id"]
    assert remote["items"][0]["quantity"] == 3
    assert "update_line_item" in mock_backend.calls


def test_remote_totals_win_when_mirror_is_complete(api, seed, db, mock_backend):
    # the remote price list has a negotiated rate
    pid = remote_product(db, seed, mock_backend, local_price=2000, remote_price=1800)
    cart_id = new_cart(api, seed)
    add_line(api, cart_id, pid, 2)

    cart = get_cart(api, cart_id)
    assert cart["item_count"] == 2
    assert cart["total_cents"] == 3600


def test_local_totals_kept_while_mirror_is_missing_lines(api, seed, db, mock_backend):
    pid = remote_product(db, seed, mock_backend, local_price=2000, remote_price=1800)
    cart_id = new_cart(api, seed)
    # no remote product id, so this line never reaches the mirror
    add_line(api, cart_id, seed.product_a, 1)
    add_line(api, cart_id, pid, 1)

    cart = get_cart(api, cart_id)
    assert cart["item_count"] == 2
    assert cart["total_cents"] == 3000


def test_removing_a_line_removes_it_remotely(api, seed, db, mock_backend):
    pid = remote_product(db, seed, mock_backend)
    cart_id = new_cart(api, seed)
    item = add_line(api, cart_id, pid, 2).json()["cart_item"]
    remote_cart_id = get_cart(api, cart_id)["remote_cart_id"]

    res = api.delete(f"/api/carts/{cart_id}/items/{item['id']}", headers=auth("user_member"))
    assert res.status_code == 200
    assert mock_backend.carts[remote_cart_id]["items"] == []
    cart = get_cart(api, cart_id)
    assert cart["total_cents"] == 0
    assert cart["item_count"] == 0


def test_line_missing_from_mirror_is_recreated(api, seed, db, mock_backend):
    pid = remote_product(db, seed, mock_backend)
    cart_id = new_cart(api, seed)
    item = add_line(api, cart_id, pid, 2).json()["cart_item"]
    cart = get_cart(api, cart_id)
    remote_cart_id = cart["remote_cart_id"]
    old_line_id = cart["items"][0]["remote_line_id"]
    assert old_line_id
    # line dropped on the remote side, e.g. by a storefront admin
    mock_backend.carts[remote_cart_id]["items"] = []

    for qty in (3, 4):
        res = api.put(f"/api/carts/{cart_id}/items/{item['id']}", json={"quantity": qty}, headers=auth("user_member"))
        assert res.status_code == 200

    remote_items = mock_backend.carts[remote_cart_id]["items"]
    assert len(remote_items) == 1
    assert remote_items[0]["quantity"] == 4
    local = get_cart(api, cart_id)["items"][0]
    assert local["remote_line_id"] == remote_items[0]["id"]
    assert local["remote_line_id"] != old_line_id


def test_line_sync_failure_keeps_local_line(api, seed, db, mock_backend):
    pid = remote_product(db, seed, mock_backend)
    mock_backend.fail_on.add("add_line_item")
    cart_id = new_cart(api, seed)
    assert add_line(api, cart_id, pid, 2).status_code == 201
    cart = get_cart(api, cart_id)
    assert cart["items"][0]["remote_line_id"] is None
    assert cart["total_cents"] == 4000


def test_create_cart_reuses_existing_mirror(seed, db):
    backend = MockCommerceBackend()
    sync = RemoteSyncService(db, backend, subdomain="acme")
    client = db.get(Client, seed.client_id)
    cart = Cart(organization_id=seed.org_id, client_id=client.id, user_id=seed.users["user_member"], currency="USD")
    db.add(cart)
    db.commit()

    first = sync.create_cart(cart, client)
    db.refresh(cart)
    second = sync.create_cart(cart, client)
    assert first.success and second.success
    assert first.remote_id == second.remote_id
    assert len(backend.carts) == 1


def test_region_falls_back_to_configured_default(seed, db):
    backend = MockCommerceBackend(regions=[])
    sync = RemoteSyncService(db, backend)
    client = db.get(Client, seed.client_id)
    cart = Cart(organization_id=seed.org_id, client_id=client.id, user_id=seed.users["user_member"], currency="USD")
    db.add(cart)
    db.commit()

    result = sync.create_cart(cart, client)
    assert backend.carts[result.remote_id]["region_id"] == "reg_default"


def test_existing_customer_for_same_client_is_relinked(seed, db):
    backend = MockCommerceBackend()
    existing = backend.create_customer(
        {"email": "nancy@northwind.example.com", "metadata": {"b2b_customer": True, "client_id": seed.client_id}}
    )
    backend.calls.clear()
    client = db.get(Client, seed.client_id)

    result = RemoteSyncService(db, backend).sync_client(client)
    assert result.success is True
    assert result.remote_id == existing["id"]
    assert "create_customer" not in backend.calls
    db.refresh(client)
    assert client.remote_customer_id == existing["id"]


def test_own_customer_found_behind_unrelated_one_with_same_email(seed, db):
    backend = MockCommerceBackend()
    backend.create_customer({"email": "nancy@northwind.example.com", "metadata": {}})
    own = backend.create_customer(
        {"email": "Nancy@Northwind.example.com", "metadata": {"b2b_customer": True, "client_id": seed.client_id}}
    )
    backend.calls.clear()
    client = db.get(Client, seed.client_id)

    result = RemoteSyncService(db, backend).sync_client(client)
    assert result.success is True
    assert result.remote_id == own["id"]
    assert result.conflicts == []
    assert "create_customer" not in backend.calls
    db.refresh(client)
    assert client.remote_customer_id == own["id"]


def test_unrelated_customer_with_same_email_is_a_conflict(seed, db):
    backend = MockCommerceBackend()
    backend.create_customer({"email": "nancy@northwind.example.com", "metadata": {}})
    client = db.get(Client, seed.client_id)

    result = RemoteSyncService(db, backend).sync_client(client)
    assert result.success is False
    assert result.conflicts == ["Email: nancy@northwind.example.com"]
    assert len(backend.customers) == 1


def test_stale_customer_link_is_replaced(seed, db):
    backend = MockCommerceBackend()
    client = db.get(Client, seed.client_id)
    client.remote_customer_id = "cus_deleted"
    db.commit()

    result = RemoteSyncService(db, backend).sync_client(client)
    assert result.success is True
    assert result.remote_id != "cus_deleted"
    assert result.remote_id in backend.customers


def test_sync_is_skipped_without_backend(seed, db):
    sync = RemoteSyncService(db, None)
    assert sync.enabled is False
    result = sync.sync_client(db.get(Client, seed.client_id))
    assert result.skipped is True
    assert result.success is False


def test_split_contact_name():
    assert split_contact_name("Nancy Davolio") == ("Nancy", "Davolio")
    assert split_contact_name("  Cher ") == ("Cher", "")
    assert split_contact_name(None) == ("", "")
