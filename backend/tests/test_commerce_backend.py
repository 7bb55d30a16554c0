import json

import pytest
import requests

from b2b_commerce.adapters.commerce_backend import HttpCommerceBackend
from b2b_commerce.errors import RemoteSyncError


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.content = json.dumps(body).encode() if body is not None else b""
        self.text = self.content.decode()
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no body")
        return self._body


class FakeSession:
    """Replays queued responses (or exceptions) and records every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.requests.append({"method": method, "url": url, "headers": headers, **kwargs})
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt

    def get(self, url, timeout=None):
        return self.request("GET", url, timeout=timeout)


def backend(session, attempts=2):
    return HttpCommerceBackend(
        base_url="https://commerce.example.com/",
        publishable_key="pk_test",
        admin_api_key="sk_admin",
        timeout=1,
        retry_attempts=attempts,
        session=session,
    )


def test_store_calls_use_publishable_key():
    session = FakeSession(FakeResponse(200, {"cart": {"id": "cart_1", "items": []}}))
    cart = backend(session).create_cart("reg_usd", metadata={"b2b_cart": True})
    assert cart["id"] == "cart_1"

    sent = session.requests[0]
    assert sent["method"] == "POST"
    assert sent["url"] == "https://commerce.example.com/store/carts"
    assert sent["headers"]["x-publishable-api-key"] == "pk_test"
    assert "Authorization" not in sent["headers"]
    assert sent["json"] == {"region_id": "reg_usd", "metadata": {"b2b_cart": True}}


def test_admin_calls_use_bearer_token():
    session = FakeSession(FakeResponse(200, {"customers": [{"id": "cus_1"}]}))
    found = backend(session).find_customers_by_email("a@b.example.com")
    assert found == [{"id": "cus_1"}]
    sent = session.requests[0]
    assert sent["headers"]["Authorization"] == "Bearer sk_admin"
    assert sent["params"] == {"email": "a@b.example.com"}


def test_missing_cart_lookup_returns_none():
    session = FakeSession(FakeResponse(404, {"message": "Cart not found"}))
    assert backend(session).get_cart("cart_gone") is None


def test_client_error_is_not_retried():
    session = FakeSession(FakeResponse(400, {"message": "Invalid variant"}))
    with pytest.raises(RemoteSyncError) as exc:
        backend(session).add_line_item("cart_1", "variant_x", 1)
    assert exc.value.status_code == 400
    assert exc.value.retryable is False
    assert "Invalid variant" in str(exc.value)
    assert len(session.requests) == 1


def test_server_error_is_retried_then_reported():
    session = FakeSession(FakeResponse(502), FakeResponse(503))
    with pytest.raises(RemoteSyncError) as exc:
        backend(session, attempts=2).list_regions()
    assert exc.value.status_code == 503
    assert exc.value.retryable is True
    assert len(session.requests) == 2


def test_transient_network_error_recovers():
    session = FakeSession(
        requests.ConnectionError("reset by peer"),
        FakeResponse(200, {"regions": [{"id": "reg_usd", "currency_code": "usd"}]}),
    )
    assert backend(session).list_regions() == [{"id": "reg_usd", "currency_code": "usd"}]
    assert len(session.requests) == 2


def test_complete_cart_returns_result_envelope():
    envelope = {"type": "order", "order": {"id": "order_1"}}
    session = FakeSession(FakeResponse(200, envelope))
    assert backend(session).complete_cart("cart_1") == envelope
    assert session.requests[0]["url"].endswith("/store/carts/cart_1/complete")


def test_validate_connection():
    assert backend(FakeSession(FakeResponse(200, {}))).validate_connection() is True
    assert backend(FakeSession(requests.ConnectionError("down"))).validate_connection() is False
