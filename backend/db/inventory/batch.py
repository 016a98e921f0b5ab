import uuid

from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..base import Base, utcnow


class Batch(Base):
    __tablename__ = "batches"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(GUID, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    batch_number = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    manufactured_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)
    received_at = Column(DateTime, nullable=False, default=utcnow)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = relationship("Product")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "batch_number": self.batch_number,
            "quantity": int(self.quantity or 0),
            "manufactured_at": self.manufactured_at,
            "expires_at": self.expires_at,
            "received_at": self.received_at,
            "notes": self.notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
