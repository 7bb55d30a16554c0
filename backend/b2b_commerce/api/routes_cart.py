from typing import Optional

from fastapi import APIRouter, Depends, Header, Response
from sqlalchemy.orm import Session

from b2b_commerce.api.deps import get_access, get_sync
from b2b_commerce.db import get_db
from b2b_commerce.schemas.cart_schema import (
    AddItemIn,
    CartCreateIn,
    CartItemOut,
    CartOut,
    CartUpdateIn,
    CheckoutReport,
    UpdateItemIn,
)
from b2b_commerce.services.access_service import AccessContext
from b2b_commerce.services.cart_service import CartService
from b2b_commerce.services.checkout_service import CheckoutService
from b2b_commerce.services.remote_sync_service import RemoteSyncService

router = APIRouter(prefix="/api/carts", tags=["cart"])


def _cart_service(
    db: Session = Depends(get_db),
    ctx: AccessContext = Depends(get_access),
    sync: RemoteSyncService = Depends(get_sync),
) -> CartService:
    return CartService(db, ctx, sync)


def _checkout_service(
    db: Session = Depends(get_db),
    ctx: AccessContext = Depends(get_access),
    sync: RemoteSyncService = Depends(get_sync),
) -> CheckoutService:
    return CheckoutService(db, ctx, sync)


@router.post("", status_code=201, summary="Create cart (or return the active one)")
def create_cart(payload: CartCreateIn, response: Response, svc: CartService = Depends(_cart_service)):
    cart, created = svc.create_cart(payload.client_id)
    body = {"cart": CartOut.model_validate(cart).model_dump(mode="json")}
    if not created:
        response.status_code = 200
        body["message"] = "Existing active cart returned"
    return body


@router.get("", summary="List the caller's carts")
def list_carts(
    status: str = "active",
    client_id: Optional[int] = None,
    svc: CartService = Depends(_cart_service),
):
    carts = svc.list_carts(status=status, client_id=client_id)
    return {"carts": [CartOut.model_validate(c).model_dump(mode="json") for c in carts]}


@router.get("/{cart_id}", summary="Get cart")
def get_cart(cart_id: int, svc: CartService = Depends(_cart_service)):
    return {"cart": CartOut.model_validate(svc.get_cart(cart_id)).model_dump(mode="json")}


@router.put("/{cart_id}", summary="Update cart metadata")
def update_cart(cart_id: int, payload: CartUpdateIn, svc: CartService = Depends(_cart_service)):
    cart = svc.update_cart(cart_id, currency=payload.currency, expires_at=payload.expires_at)
    return {"cart": CartOut.model_validate(cart).model_dump(mode="json")}


@router.delete("/{cart_id}", summary="Abandon cart")
def abandon_cart(cart_id: int, svc: CartService = Depends(_cart_service)):
    cart = svc.abandon_cart(cart_id)
    return {"cart": CartOut.model_validate(cart).model_dump(mode="json"), "message": "Cart abandoned"}


@router.post("/{cart_id}/items", status_code=201, summary="Add item to cart")
def add_item(
    cart_id: int,
    payload: AddItemIn,
    response: Response,
    svc: CartService = Depends(_cart_service),
):
    item, created = svc.add_item(cart_id, payload.product_id, payload.quantity)
    if not created:
        response.status_code = 200
    return {"cart_item": CartItemOut.model_validate(item).model_dump(mode="json")}


@router.put("/{cart_id}/items/{item_id}", summary="Update item quantity (0 removes)")
def update_item(
    cart_id: int,
    item_id: int,
    payload: UpdateItemIn,
    svc: CartService = Depends(_cart_service),
):
    item = svc.update_item(cart_id, item_id, payload.quantity)
    if item is None:
        return {"cart_item": None, "message": "Item removed from cart"}
    return {"cart_item": CartItemOut.model_validate(item).model_dump(mode="json")}


@router.delete("/{cart_id}/items/{item_id}", summary="Remove item")
def remove_item(cart_id: int, item_id: int, svc: CartService = Depends(_cart_service)):
    svc.remove_item(cart_id, item_id)
    return {"message": "Item removed from cart"}


@router.get("/{cart_id}/checkout", response_model=CheckoutReport, summary="Validate cart for checkout")
def validate_checkout(cart_id: int, svc: CheckoutService = Depends(_checkout_service)):
    return svc.validate(cart_id)


@router.post("/{cart_id}/checkout", status_code=201, summary="Checkout cart")
def checkout(
    cart_id: int,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    svc: CheckoutService = Depends(_checkout_service),
):
    return svc.checkout(cart_id, idempotency_key=idempotency_key)
