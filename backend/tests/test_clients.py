from conftest import add_line, auth, new_cart

NEW_CLIENT = {
    "company_name": "Contoso Ltd",
    "contact_name": "Maria Anders Garcia",
    "contact_email": "maria@contoso.example.com",
    "business_type": "llc",
    "payment_terms": "net_30",
    "shipping_address_line1": "9 Dock Road",
    "shipping_city": "Portland",
    "shipping_country": "US",
}


def create_client(api, user="user_manager", **overrides):
    return api.post("/api/clients", json=dict(NEW_CLIENT, **overrides), headers=auth(user))


def test_manager_creates_client(api, seed):
    res = create_client(api)
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["client"]["company_name"] == "Contoso Ltd"
    assert body["client"]["active"] is True
    assert body["client"]["preferred_currency"] == "USD"
    assert body["client"]["remote_customer_id"] is None
    assert body["sync"]["skipped"] is True


def test_member_cannot_create_client(api, seed):
    assert create_client(api, user="user_member").status_code == 403


def test_duplicate_company_or_email_is_rejected(api, seed):
    create_client(api)
    res = create_client(api, company_name="CONTOSO LTD", contact_email="other@contoso.example.com")
    assert res.status_code == 400
    assert res.json()["error"] == "A client with this company name already exists"

    res = create_client(api, company_name="Contoso Two", contact_email="Maria@Contoso.example.com")
    assert res.status_code == 400
    assert res.json()["error"] == "A client with this contact email already exists"


def test_invalid_email_is_rejected(api, seed):
    res = create_client(api, contact_email="not-an-email")
    assert res.status_code == 400
    assert res.json()["error"] == "Invalid request"


def test_list_search_and_get(api, seed):
    create_client(api)
    res = api.get("/api/clients", params={"q": "contoso"}, headers=auth("user_member"))
    assert [c["company_name"] for c in res.json()["clients"]] == ["Contoso Ltd"]

    res = api.get(f"/api/clients/{seed.client_id}", headers=auth("user_member"))
    assert res.json()["client"]["contact_email"] == "nancy@northwind.example.com"

    assert api.get(f"/api/clients/{seed.other_client_id}", headers=auth("user_member")).status_code == 404


def test_update_client(api, seed):
    res = api.put(
        f"/api/clients/{seed.client_id}",
        json={"industry": "Wholesale", "credit_limit_cents": 500000},
        headers=auth("user_manager"),
    )
    assert res.status_code == 200
    client = res.json()["client"]
    assert client["industry"] == "Wholesale"
    assert client["credit_limit_cents"] == 500000
    assert client["company_name"] == "Northwind Traders"


def test_update_cannot_collide_with_another_client(api, seed):
    create_client(api)
    res = api.put(
        f"/api/clients/{seed.client_id}", json={"company_name": "Contoso Ltd"}, headers=auth("user_manager")
    )
    assert res.status_code == 400


def test_only_admins_delete_clients(api, seed):
    res = api.delete(f"/api/clients/{seed.client_id}", headers=auth("user_manager"))
    assert res.status_code == 403
    assert res.json()["error"] == "Admin permissions required"


def test_delete_refused_while_client_has_active_cart(api, seed):
    cart_id = new_cart(api, seed)
    res = api.delete(f"/api/clients/{seed.client_id}", headers=auth("user_admin"))
    assert res.status_code == 400
    assert res.json()["error"].startswith("Cannot delete client with active carts")

    api.delete(f"/api/carts/{cart_id}", headers=auth("user_member"))
    res = api.delete(f"/api/clients/{seed.client_id}", headers=auth("user_admin"))
    assert res.status_code == 200
    assert res.json()["client"]["active"] is False

    listed = api.get("/api/clients", headers=auth("user_member")).json()["clients"]
    assert seed.client_id not in [c["id"] for c in listed]
    inactive = api.get("/api/clients", params={"active": False}, headers=auth("user_member")).json()["clients"]
    assert [c["id"] for c in inactive] == [seed.client_id]


def test_delete_refused_while_client_has_open_orders(api, seed):
    cart_id = new_cart(api, seed)
    add_line(api, cart_id, seed.product_a, 1)
    order = api.post(f"/api/carts/{cart_id}/checkout", headers=auth("user_member")).json()["order"]

    res = api.delete(f"/api/clients/{seed.client_id}", headers=auth("user_admin"))
    assert res.status_code == 400
    assert res.json()["error"].startswith("Cannot delete client with active orders")

    api.put(f"/api/orders/{order['id']}", json={"status": "cancelled"}, headers=auth("user_manager"))
    assert api.delete(f"/api/clients/{seed.client_id}", headers=auth("user_admin")).status_code == 200


def test_deactivated_client_cannot_get_new_carts(api, seed):
    api.delete(f"/api/clients/{seed.client_id}", headers=auth("user_admin"))
    res = api.post("/api/carts", json={"client_id": seed.client_id}, headers=auth("user_member"))
    assert res.status_code == 404


def test_create_mirrors_client_as_customer(api, seed, mock_backend):
    body = create_client(api).json()
    remote_id = body["client"]["remote_customer_id"]
    assert body["sync"]["success"] is True
    assert remote_id == body["sync"]["remote_id"]

    customer = mock_backend.customers[remote_id]
    assert customer["first_name"] == "Maria"
    assert customer["last_name"] == "Anders Garcia"
    assert customer["company_name"] == "Contoso Ltd"
    assert customer["metadata"]["b2b_customer"] is True
    assert customer["metadata"]["client_id"] == body["client"]["id"]
    assert customer["metadata"]["organization_subdomain"] == "acme"


def test_manual_sync_requires_reachable_backend(api, seed, mock_backend):
    mock_backend.connected = False
    res = api.post(f"/api/clients/{seed.client_id}/sync", headers=auth("user_manager"))
    assert res.status_code == 503
    assert res.json()["error"] == "Unable to connect to the commerce backend"


def test_manual_sync_without_backend_is_503(api, seed):
    res = api.post(f"/api/clients/{seed.client_id}/sync", headers=auth("user_manager"))
    assert res.status_code == 503


def test_manual_sync_links_then_updates(api, seed, mock_backend):
    first = api.post(f"/api/clients/{seed.client_id}/sync", headers=auth("user_manager")).json()
    assert first["success"] is True
    assert first["sync_status"] == "synced"

    second = api.post(f"/api/clients/{seed.client_id}/sync", json={}, headers=auth("user_manager")).json()
    assert second["remote_customer_id"] == first["remote_customer_id"]
    assert len(mock_backend.customers) == 1
    assert "update_customer" in mock_backend.calls

    status = api.get(f"/api/clients/{seed.client_id}/sync", headers=auth("user_member")).json()
    assert status["sync_status"] == "synced"
    assert status["remote_customer_id"] == first["remote_customer_id"]


def test_email_taken_remotely_is_a_conflict_unless_forced(api, seed, mock_backend):
    mock_backend.create_customer({"email": "nancy@northwind.example.com", "metadata": {}})

    res = api.post(f"/api/clients/{seed.client_id}/sync", headers=auth("user_manager")).json()
    assert res["success"] is False
    assert res["sync_status"] == "conflict"
    assert res["conflicts"] == ["Email: nancy@northwind.example.com"]

    forced = api.post(
        f"/api/clients/{seed.client_id}/sync", json={"force_sync": True}, headers=auth("user_manager")
    ).json()
    assert forced["sync_status"] == "synced"
    assert len(mock_backend.customers) == 2


def test_sync_status_pending_before_first_sync(api, seed):
    status = api.get(f"/api/clients/{seed.client_id}/sync", headers=auth("user_member")).json()
    assert status == {
        "success": False,
        "remote_customer_id": None,
        "sync_status": "pending",
        "last_sync_at": status["last_sync_at"],
    }


def test_deleting_client_removes_remote_customer(api, seed, mock_backend):
    api.post(f"/api/clients/{seed.client_id}/sync", headers=auth("user_manager"))
    assert len(mock_backend.customers) == 1
    assert api.delete(f"/api/clients/{seed.client_id}", headers=auth("user_admin")).status_code == 200
    assert mock_backend.customers == {}
