from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from uuid import UUID


def _strip_nullable(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class SupplierRead(BaseModel):
    id: UUID
    name: str
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SupplierCreate(BaseModel):
    name: str
    contact_person: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    active: bool = True

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email(cls, v):
        return _strip_nullable(v) if isinstance(v, str) else v

    @field_validator("contact_person", "phone", "address", "website", "notes")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class SupplierUpdate(BaseModel):
    name: Optional[str] = None
    contact_person: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    active: Optional[bool] = None

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email(cls, v):
        return _strip_nullable(v) if isinstance(v, str) else v


class ProductSupplierRead(BaseModel):
    id: UUID
    product_id: UUID
    supplier_id: UUID
    supplier_name: Optional[str] = None
    product_name: Optional[str] = None
    supplier_sku: Optional[str] = None
    cost_price: float
    lead_time_days: Optional[int] = None
    min_order_qty: Optional[int] = None
    is_primary: bool = False


class ProductSupplierLink(BaseModel):
    product_id: UUID
    supplier_sku: Optional[str] = None
    cost_price: float = Field(ge=0)
    lead_time_days: Optional[int] = Field(default=None, ge=0)
    min_order_qty: Optional[int] = Field(default=None, ge=1)
    is_primary: bool = False


class ProductSupplierUpdate(BaseModel):
    supplier_sku: Optional[str] = None
    cost_price: Optional[float] = Field(default=None, ge=0)
    lead_time_days: Optional[int] = Field(default=None, ge=0)
    min_order_qty: Optional[int] = Field(default=None, ge=1)
    is_primary: Optional[bool] = None
