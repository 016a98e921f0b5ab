from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class SaleItemCreate(BaseModel):
    product_id: UUID
    quantity: int = Field(gt=0)
    price: float = Field(ge=0)
    discount: float = Field(default=0, ge=0)


class SaleCreate(BaseModel):
    items: List[SaleItemCreate]
    customer: Optional[str] = None
    payment_method: Optional[str] = None
    overall_discount: float = Field(default=0, ge=0)
    tax_rate: float = Field(default=0, ge=0, le=100)
    notes: Optional[str] = None

    @field_validator("customer", "payment_method", "notes")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class SaleItemRead(BaseModel):
    id: UUID
    product_id: Optional[UUID] = None
    product_name: str
    quantity: int
    unit_price: float
    discount: float
    subtotal: float
    total_price: float


class SaleRead(BaseModel):
    id: UUID
    invoice_number: str
    customer: Optional[str] = None
    payment_method: Optional[str] = None
    subtotal: float
    discount: float
    tax: float
    total_amount: float
    status: str
    notes: Optional[str] = None
    created_at: datetime
    items: List[SaleItemRead]


class SaleCreated(BaseModel):
    sale_id: UUID
    invoice_number: str
    total_amount: float


class SalesChartPoint(BaseModel):
    date: str
    amount: float


class SalesAnalytics(BaseModel):
    range: str
    total_revenue: float
    total_orders: int
    average_order_value: float
    chart_data: List[SalesChartPoint]


class TopSellingProduct(BaseModel):
    product_id: Optional[UUID] = None
    product_name: str
    units_sold: int
    revenue: float
