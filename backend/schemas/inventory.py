from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


StockMovementType = Literal["IN", "OUT", "ADJUSTMENT", "RETURN"]
StockAlertType = Literal["LOW_STOCK", "OUT_OF_STOCK", "EXPIRING_SOON", "EXPIRED"]


def _strip_nullable(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


def to_naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None or v.tzinfo is None:
        return v
    return (v - v.utcoffset()).replace(tzinfo=None)


class StockMovementCreate(BaseModel):
    product_id: UUID
    type: StockMovementType
    quantity: int = Field(ge=0)
    supplier_id: Optional[UUID] = None
    batch_id: Optional[UUID] = None
    unit_cost: Optional[float] = Field(default=None, ge=0)
    reference: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("reference", "reason", "notes")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)

    @model_validator(mode="after")
    def _positive_for_deltas(self):
        # ADJUSTMENT carries the target quantity, which may be 0.
        if self.type != "ADJUSTMENT" and self.quantity <= 0:
            raise ValueError("quantity must be > 0")
        return self


class StockAdjustment(BaseModel):
    product_id: UUID
    new_quantity: int = Field(ge=0)
    reason: str
    notes: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def _reason_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("reason is required")
        return v

    @field_validator("notes")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class StockMovementRead(BaseModel):
    id: UUID
    product_id: UUID
    supplier_id: Optional[UUID] = None
    batch_id: Optional[UUID] = None
    type: StockMovementType
    quantity: int
    previous_qty: int
    new_qty: int
    unit_cost: Optional[float] = None
    total_cost: Optional[float] = None
    reference: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    performed_by: str
    created_at: datetime


class BatchCreate(BaseModel):
    product_id: UUID
    batch_number: str
    quantity: int = Field(ge=0)
    manufactured_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("batch_number")
    @classmethod
    def _batch_number(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("batch_number is required")
        return v

    @field_validator("manufactured_at", "expires_at", "received_at")
    @classmethod
    def _naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def _dates_ordered(self):
        if self.manufactured_at and self.expires_at and self.expires_at < self.manufactured_at:
            raise ValueError("expires_at must be after manufactured_at")
        return self


class BatchUpdate(BaseModel):
    batch_number: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=0)
    manufactured_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("manufactured_at", "expires_at", "received_at")
    @classmethod
    def _naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class BatchRead(BaseModel):
    id: UUID
    product_id: UUID
    batch_number: str
    quantity: int
    manufactured_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    received_at: datetime
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class StockAlertCreate(BaseModel):
    product_id: UUID
    type: StockAlertType
    message: str
    threshold: Optional[int] = None
    current_value: Optional[int] = None

    @field_validator("message")
    @classmethod
    def _message(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("message is required")
        return v


class StockAlertRead(BaseModel):
    id: UUID
    product_id: UUID
    batch_id: Optional[UUID] = None
    type: StockAlertType
    message: str
    threshold: Optional[int] = None
    current_value: Optional[int] = None
    acknowledged: bool
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None


class BulkAcknowledge(BaseModel):
    alert_ids: List[UUID]
