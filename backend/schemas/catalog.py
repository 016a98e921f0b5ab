from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, field_validator


def _required_name(v: str, limit: int) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("name is required")
    if len(v) > limit:
        raise ValueError(f"name must be {limit} characters or fewer")
    return v


class CategoryRead(BaseModel):
    id: UUID
    name: str
    product_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryWrite(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _required_name(v, 100)


class TagRead(BaseModel):
    id: UUID
    name: str
    product_count: int = 0


class TagWrite(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _required_name(v, 50)
