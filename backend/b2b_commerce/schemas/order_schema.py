from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from b2b_commerce.schemas.product_schema import ProductSummary


class OrderLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    product_id: int
    sku: Optional[str] = None
    name: Optional[str] = None
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    product: Optional[ProductSummary] = None


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_number: str
    organization_id: int
    client_id: Optional[int] = None
    cart_id: Optional[int] = None
    customer_name: str
    customer_email: str
    status: str
    currency: str
    total_cents: int
    remote_order_id: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    lines: List[OrderLineOut] = []


class OrderStatusIn(BaseModel):
    status: Literal["pending", "confirmed", "shipped", "delivered", "cancelled"]


class OrderItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class OrderCreateIn(BaseModel):
    client_id: int
    items: List[OrderItemIn] = Field(min_length=1)
