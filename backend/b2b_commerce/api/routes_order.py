from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from b2b_commerce.api.deps import get_access
from b2b_commerce.db import get_db
from b2b_commerce.schemas.order_schema import OrderCreateIn, OrderOut, OrderStatusIn
from b2b_commerce.services.access_service import AccessContext
from b2b_commerce.services.order_service import OrderService

router = APIRouter(tags=["orders"])


def _order_service(db: Session = Depends(get_db), ctx: AccessContext = Depends(get_access)) -> OrderService:
    return OrderService(db, ctx)


@router.get("", summary="List orders")
def list_orders(
    status: Optional[str] = None,
    client_id: Optional[int] = None,
    svc: OrderService = Depends(_order_service),
):
    orders = svc.list_orders(status=status, client_id=client_id)
    return {"orders": [OrderOut.model_validate(o).model_dump(mode="json") for o in orders]}


@router.post("", status_code=201, summary="Place order without a cart")
def create_order(payload: OrderCreateIn, svc: OrderService = Depends(_order_service)):
    order = svc.create_order(payload.client_id, [(it.product_id, it.quantity) for it in payload.items])
    return {"order": OrderOut.model_validate(order).model_dump(mode="json"), "message": "Order created successfully"}


@router.get("/{order_id}", summary="Get order")
def get_order(order_id: int, svc: OrderService = Depends(_order_service)):
    return {"order": OrderOut.model_validate(svc.get_order(order_id)).model_dump(mode="json")}


@router.put("/{order_id}", summary="Update order status")
def update_order(order_id: int, payload: OrderStatusIn, svc: OrderService = Depends(_order_service)):
    order = svc.update_status(order_id, payload.status)
    return {"order": OrderOut.model_validate(order).model_dump(mode="json")}
