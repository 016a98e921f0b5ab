from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel


class InventoryTotalsRead(BaseModel):
    total_products: int
    total_quantity: int
    total_value: float
    low_stock_count: int
    out_of_stock_count: int


class InventoryReport(InventoryTotalsRead):
    value_by_category: Dict[str, float]


class InventoryMetrics(InventoryTotalsRead):
    average_value: float


class BreakdownEntry(BaseModel):
    label: str
    count: int
    value: float


class ValuePoint(BaseModel):
    date: str
    value: float


class DashboardReport(BaseModel):
    total_value: float
    total_products: int
    low_stock_count: int
    recent_products: int
    average_price: float
    total_units: int
    category_count: int
    category_breakdown: List[BreakdownEntry]
    manufacturer_breakdown: List[BreakdownEntry]
    chart_data: List[ValuePoint]


class InventoryValueRead(InventoryTotalsRead):
    id: UUID
    snapshot_date: datetime


class MovementSummary(BaseModel):
    days: int
    total_in: int
    total_out: int
    total_adjustments: int
    total_returns: int
    net_change: int


class TopValueProduct(BaseModel):
    id: UUID
    name: str
    sku: Optional[str] = None
    quantity: int
    price: float
    value: float
