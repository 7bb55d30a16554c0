from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClientSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    company_name: str
    contact_name: str
    contact_email: str
    contact_phone: Optional[str] = None


class CartItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    cart_id: int
    product_id: int
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    product_name: str
    product_sku: Optional[str] = None
    product_description: Optional[str] = None
    remote_line_id: Optional[str] = None


class CartOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    organization_id: int
    client_id: int
    user_id: int
    status: str
    currency: str
    total_cents: int
    item_count: int
    remote_cart_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    client: Optional[ClientSummary] = None
    items: List[CartItemOut] = []


class CartCreateIn(BaseModel):
    client_id: int


class CartUpdateIn(BaseModel):
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    expires_at: Optional[datetime] = None


class AddItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class UpdateItemIn(BaseModel):
    # 0 removes the line
    quantity: int = Field(ge=0)


class CheckoutCartSummary(BaseModel):
    id: int
    status: str
    currency: str
    total_cents: int
    item_count: int
    client: Optional[ClientSummary] = None


class CheckoutValidation(BaseModel):
    can_checkout: bool
    issues: List[str] = []
    warnings: List[str] = []


class CheckoutReport(BaseModel):
    valid: bool
    cart: CheckoutCartSummary
    validation: CheckoutValidation
