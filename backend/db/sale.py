import uuid
from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from .base import Base, utcnow


class Sale(Base):
    __tablename__ = "sales"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_number = Column(String(32), nullable=False, unique=True, index=True)
    customer = Column(String, nullable=True)
    payment_method = Column(String, nullable=True)

    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    discount = Column(Numeric(14, 2), nullable=False, default=0)
    tax = Column(Numeric(14, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)

    status = Column(Text, nullable=False, default="completed", index=True)  # completed|refunded|cancelled
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    items = relationship("SaleItem", back_populates="sale", cascade="all, delete-orphan")

    @property
    def to_schema(self):
        """Receipt view; expects `items` to be loaded."""
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer": self.customer,
            "payment_method": self.payment_method,
            "subtotal": float(self.subtotal or 0),
            "discount": float(self.discount or 0),
            "tax": float(self.tax or 0),
            "total_amount": float(self.total_amount or 0),
            "status": self.status,
            "notes": self.notes,
            "created_at": self.created_at,
            "items": [i.to_schema for i in (self.items or [])],
        }


class SaleItem(Base):
    __tablename__ = "sale_items"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    sale_id = Column(GUID, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    # Kept when the product is later deleted; product_name preserves the receipt.
    product_id = Column(GUID, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    product_name = Column(String, nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    subtotal = Column(Numeric(14, 2), nullable=False)
    total_price = Column(Numeric(14, 2), nullable=False)

    sale = relationship("Sale", back_populates="items")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": int(self.quantity),
            "unit_price": float(self.unit_price),
            "discount": float(self.discount or 0),
            "subtotal": float(self.subtotal),
            "total_price": float(self.total_price),
        }
