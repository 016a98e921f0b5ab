from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


ProductCondition = Literal["new", "used", "refurbished", "for-parts"]

_OPTIONAL_TEXT_LIMITS = {
    "sku": 100,
    "model": 100,
    "supplier": 100,
    "location": 200,
    "specs": 2000,
    "compatibility": 1000,
    "notes": 2000,
}


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = str(v).strip()
    return v or None


def check_image_url(v: Optional[str]) -> Optional[str]:
    v = _blank_to_none(v)
    if v is None:
        return None
    if v.startswith("data:image/") or v.startswith("http://") or v.startswith("https://"):
        return v
    raise ValueError("Image URL must be a valid URL or base64 data URL")


class TagRef(BaseModel):
    id: UUID
    name: str


class ProductBase(BaseModel):
    sku: Optional[str] = None
    model: Optional[str] = None
    supplier: Optional[str] = None
    location: Optional[str] = None
    specs: Optional[str] = None
    compatibility: Optional[str] = None
    notes: Optional[str] = None
    image_url: Optional[str] = None
    category_id: Optional[UUID] = None
    tag_ids: Optional[List[UUID]] = None

    @field_validator("sku", "model", "supplier", "location", "specs", "compatibility", "notes")
    @classmethod
    def _optional_text(cls, v: Optional[str], info) -> Optional[str]:
        v = _blank_to_none(v)
        limit = _OPTIONAL_TEXT_LIMITS[info.field_name]
        if v is not None and len(v) > limit:
            raise ValueError(f"must be {limit} characters or fewer")
        return v

    @field_validator("image_url")
    @classmethod
    def _image_url(cls, v: Optional[str]) -> Optional[str]:
        return check_image_url(v)

    @field_validator("category_id", mode="before")
    @classmethod
    def _blank_category(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ProductCreate(ProductBase):
    name: str = Field(max_length=200)
    manufacturer: str = Field(max_length=100)
    condition: ProductCondition = "new"
    price: float = Field(ge=0)
    quantity: int = Field(ge=0)
    low_stock_at: Optional[int] = Field(default=None, ge=0)
    warranty_months: Optional[int] = Field(default=None, ge=0)

    @field_validator("name", "manufacturer", mode="before")
    @classmethod
    def _strip_required(cls, v) -> str:
        v = (str(v) if v is not None else "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("low_stock_at", "warranty_months", mode="before")
    @classmethod
    def _blank_int(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ProductUpdate(ProductBase):
    name: Optional[str] = Field(default=None, max_length=200)
    manufacturer: Optional[str] = Field(default=None, max_length=100)
    condition: Optional[ProductCondition] = None
    price: Optional[float] = Field(default=None, ge=0)
    quantity: Optional[int] = Field(default=None, ge=0)
    low_stock_at: Optional[int] = Field(default=None, ge=0)
    warranty_months: Optional[int] = Field(default=None, ge=0)

    @field_validator("name", "manufacturer")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v


class ProductRead(BaseModel):
    id: UUID
    name: str
    sku: Optional[str] = None
    category_id: Optional[UUID] = None
    category_name: Optional[str] = None
    manufacturer: str
    model: Optional[str] = None
    condition: str
    price: float
    quantity: int
    low_stock_at: Optional[int] = None
    stock_status: str
    location: Optional[str] = None
    specs: Optional[str] = None
    compatibility: Optional[str] = None
    supplier: Optional[str] = None
    warranty_months: Optional[int] = None
    notes: Optional[str] = None
    image_url: Optional[str] = None
    tags: List[TagRef] = []
    created_at: datetime
    updated_at: datetime


class ProductFilters(BaseModel):
    search: Optional[str] = None
    category: Optional[str] = None
    manufacturer: Optional[str] = None
    condition: Optional[str] = None
    low_stock: bool = False
    sort: Optional[str] = None


class ProductPage(BaseModel):
    items: List[ProductRead]
    total: int
    page: int
    page_size: int
    total_pages: int
    filters: ProductFilters


class ImportRowError(BaseModel):
    row: int
    error: str


class ProductImportResult(BaseModel):
    created: int
    total: int
    errors: List[ImportRowError]
