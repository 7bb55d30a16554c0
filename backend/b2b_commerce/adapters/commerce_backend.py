from typing import Any, Dict, List, Optional

import requests
from requests import RequestException
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from b2b_commerce.config import settings
from b2b_commerce.errors import RemoteSyncError
from b2b_commerce.utils.logging import get_logger

logger = get_logger(__name__)


class _Retryable(Exception):
    """5xx from the backend; retried like a network error."""

    def __init__(self, response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def http_retry(attempts: int = 3):
    return retry(
        reraise=True,
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type((RequestException, _Retryable)),
    )


class HttpCommerceBackend:
    """
    Client for the remote commerce backend's store and admin REST APIs.

    Store calls carry the publishable key, admin calls the admin API key.
    Every failure surfaces as RemoteSyncError; 404 on a lookup returns None.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        publishable_key: Optional[str] = None,
        admin_api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.COMMERCE_BACKEND_URL).rstrip("/")
        self.publishable_key = publishable_key if publishable_key is not None else settings.COMMERCE_PUBLISHABLE_KEY
        self.admin_api_key = admin_api_key if admin_api_key is not None else settings.COMMERCE_ADMIN_API_KEY
        self.timeout = timeout or settings.COMMERCE_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        attempts = retry_attempts or settings.COMMERCE_RETRY_ATTEMPTS
        self._send = http_retry(attempts)(self._send_once)

    # --- transport -----------------------------------------------------

    def _headers(self, admin: bool) -> Dict[str, str]:
        h = {"Content-Type": "application/json", "Accept": "application/json"}
        if admin:
            if self.admin_api_key:
                h["Authorization"] = f"Bearer {self.admin_api_key}"
        elif self.publishable_key:
            h["x-publishable-api-key"] = self.publishable_key
        return h

    def _send_once(self, method: str, url: str, admin: bool, **kwargs):
        logger.debug("%s %s", method, url)
        resp = self.session.request(
            method, url, headers=self._headers(admin), timeout=self.timeout, **kwargs
        )
        if resp.status_code >= 500:
            raise _Retryable(resp)
        return resp

    def _request(
        self,
        method: str,
        path: str,
        admin: bool = False,
        allow_404: bool = False,
        **kwargs,
    ) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}{path}"
        try:
            resp = self._send(method, url, admin, **kwargs)
        except _Retryable as e:
            raise RemoteSyncError(
                f"{method} {path} failed with HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except RequestException as e:
            raise RemoteSyncError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 404 and allow_404:
            return None
        if resp.status_code >= 400:
            message = _error_message(resp)
            raise RemoteSyncError(
                f"{method} {path} rejected ({resp.status_code}): {message}",
                status_code=resp.status_code,
                retryable=False,
            )
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteSyncError(f"{method} {path} returned invalid JSON") from e

    # --- health --------------------------------------------------------

    def validate_connection(self) -> bool:
        try:
            resp = self.session.get(f"{self.base_url}/health", timeout=self.timeout)
            return resp.status_code == 200
        except RequestException as e:
            logger.warning("commerce backend unreachable: %s", e)
            return False

    # --- customers (admin API) -----------------------------------------

    def find_customers_by_email(self, email: str) -> List[Dict[str, Any]]:
        body = self._request("GET", "/admin/customers", admin=True, params={"email": email})
        return body.get("customers") or []

    def get_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        body = self._request("GET", f"/admin/customers/{customer_id}", admin=True, allow_404=True)
        return body.get("customer") if body else None

    def create_customer(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/admin/customers", admin=True, json=payload)["customer"]

    def update_customer(self, customer_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request(
            "POST", f"/admin/customers/{customer_id}", admin=True, json=payload
        )["customer"]

    def delete_customer(self, customer_id: str) -> None:
        self._request("DELETE", f"/admin/customers/{customer_id}", admin=True, allow_404=True)

    # --- catalogue -----------------------------------------------------

    def list_regions(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/store/regions").get("regions") or []

    def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        body = self._request("GET", f"/store/products/{product_id}", allow_404=True)
        return body.get("product") if body else None

    # --- carts (store API) ---------------------------------------------

    def create_cart(
        self,
        region_id: str,
        customer_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload = {"region_id": region_id, "metadata": metadata or {}}
        if customer_id:
            payload["customer_id"] = customer_id
        return self._request("POST", "/store/carts", json=payload)["cart"]

    def get_cart(self, cart_id: str) -> Optional[Dict[str, Any]]:
        body = self._request("GET", f"/store/carts/{cart_id}", allow_404=True)
        return body.get("cart") if body else None

    def update_cart(self, cart_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/store/carts/{cart_id}", json=payload)["cart"]

    def add_line_item(
        self, cart_id: str, variant_id: str, quantity: int, metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload = {"variant_id": variant_id, "quantity": quantity, "metadata": metadata or {}}
        return self._request("POST", f"/store/carts/{cart_id}/line-items", json=payload)["cart"]

    def update_line_item(self, cart_id: str, line_id: str, quantity: int) -> Dict[str, Any]:
        return self._request(
            "POST", f"/store/carts/{cart_id}/line-items/{line_id}", json={"quantity": quantity}
        )["cart"]

    def delete_line_item(self, cart_id: str, line_id: str) -> Optional[Dict[str, Any]]:
        body = self._request("DELETE", f"/store/carts/{cart_id}/line-items/{line_id}")
        return body.get("cart") or body.get("parent")

    def list_shipping_options(self, cart_id: str) -> List[Dict[str, Any]]:
        body = self._request("GET", "/store/shipping-options", params={"cart_id": cart_id})
        return body.get("shipping_options") or []

    def add_shipping_method(self, cart_id: str, option_id: str) -> Dict[str, Any]:
        return self._request(
            "POST", f"/store/carts/{cart_id}/shipping-methods", json={"option_id": option_id}
        )["cart"]

    def init_payment_sessions(self, cart_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/store/carts/{cart_id}/payment-sessions").get("cart") or {}

    def complete_cart(self, cart_id: str) -> Dict[str, Any]:
        """{"type": "order", "order": {...}} or {"type": "cart", "error": {...}}"""
        return self._request("POST", f"/store/carts/{cart_id}/complete")


def _error_message(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)[:200]
    return str(body)[:200]
