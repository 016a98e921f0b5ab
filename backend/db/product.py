import uuid
from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from core.stock import stock_status
from .base import Base, utcnow


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        CheckConstraint("low_stock_at IS NULL OR low_stock_at >= 0", name="ck_products_low_stock_at_non_negative"),
    )

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(GUID, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)

    name = Column(String(200), nullable=False, index=True)
    manufacturer = Column(String(100), nullable=False, index=True)
    model = Column(String(100), nullable=True)
    sku = Column(String(100), nullable=True, index=True)

    quantity = Column(Integer, nullable=False, default=0)
    low_stock_at = Column(Integer, nullable=True)

    # 'new' | 'used' | 'refurbished' | 'for-parts'
    condition = Column(String(20), nullable=False, default="new")
    location = Column(String(200), nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)

    specs = Column(Text, nullable=True)
    compatibility = Column(Text, nullable=True)
    supplier = Column(String(100), nullable=True)
    warranty_months = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="products")
    category = relationship("Category", back_populates="products")
    tags = relationship("Tag", secondary="product_tags", back_populates="products")

    @property
    def to_schema(self):
        """Serialize; expects `category` and `tags` to be loaded."""
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "manufacturer": self.manufacturer,
            "model": self.model,
            "condition": self.condition,
            "price": float(self.price or 0),
            "quantity": int(self.quantity or 0),
            "low_stock_at": self.low_stock_at,
            "stock_status": stock_status(int(self.quantity or 0), self.low_stock_at),
            "location": self.location,
            "specs": self.specs,
            "compatibility": self.compatibility,
            "supplier": self.supplier,
            "warranty_months": self.warranty_months,
            "notes": self.notes,
            "image_url": self.image_url,
            "tags": [t.to_schema for t in (self.tags or [])],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
