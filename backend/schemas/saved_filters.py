from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, field_validator

from schemas.products import ProductFilters


class SavedFilterCreate(BaseModel):
    name: str
    filters: ProductFilters = ProductFilters()
    is_default: bool = False

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Filter name is required")
        if len(v) > 50:
            raise ValueError("Filter name must be 50 characters or fewer")
        return v


class SavedFilterRead(BaseModel):
    id: UUID
    name: str
    filters: ProductFilters
    is_default: bool
    created_at: datetime
    updated_at: datetime
