from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

BusinessType = Literal["corporation", "partnership", "llc", "sole_proprietorship", "non_profit", "other"]
PaymentTerms = Literal["net_15", "net_30", "net_60", "net_90", "cod", "prepaid"]


class ClientFields(BaseModel):
    contact_phone: Optional[str] = None
    tax_id: Optional[str] = None
    business_type: Optional[BusinessType] = None
    industry: Optional[str] = None

    billing_address_line1: Optional[str] = None
    billing_address_line2: Optional[str] = None
    billing_city: Optional[str] = None
    billing_state: Optional[str] = None
    billing_postal_code: Optional[str] = None
    billing_country: Optional[str] = Field(default=None, min_length=2, max_length=2)

    shipping_address_line1: Optional[str] = None
    shipping_address_line2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = Field(default=None, min_length=2, max_length=2)

    payment_terms: Optional[PaymentTerms] = None
    credit_limit_cents: Optional[int] = Field(default=None, ge=0)
    preferred_currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    notes: Optional[str] = None


class ClientCreateIn(ClientFields):
    company_name: str = Field(min_length=1)
    contact_name: str = Field(min_length=1)
    contact_email: EmailStr
    # skip the remote email conflict check
    force_sync: bool = False


class ClientUpdateIn(ClientFields):
    company_name: Optional[str] = Field(default=None, min_length=1)
    contact_name: Optional[str] = Field(default=None, min_length=1)
    contact_email: Optional[EmailStr] = None
    active: Optional[bool] = None


class ClientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    organization_id: int
    company_name: str
    contact_name: str
    contact_email: str
    contact_phone: Optional[str] = None
    tax_id: Optional[str] = None
    business_type: Optional[str] = None
    industry: Optional[str] = None
    billing_address_line1: Optional[str] = None
    billing_address_line2: Optional[str] = None
    billing_city: Optional[str] = None
    billing_state: Optional[str] = None
    billing_postal_code: Optional[str] = None
    billing_country: Optional[str] = None
    shipping_address_line1: Optional[str] = None
    shipping_address_line2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = None
    payment_terms: Optional[str] = None
    credit_limit_cents: int = 0
    preferred_currency: str = "USD"
    notes: Optional[str] = None
    active: bool
    remote_customer_id: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ClientSyncIn(BaseModel):
    force_sync: bool = False
    create_if_not_exists: bool = True
