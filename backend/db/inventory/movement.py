import uuid

from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from ..base import Base, utcnow


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    product_id = Column(GUID, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_id = Column(GUID, ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True)
    batch_id = Column(GUID, ForeignKey("batches.id", ondelete="SET NULL"), nullable=True)

    type = Column(String(20), nullable=False, index=True)  # 'IN' | 'OUT' | 'ADJUSTMENT' | 'RETURN'
    quantity = Column(Integer, nullable=False)
    previous_qty = Column(Integer, nullable=False)
    new_qty = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(12, 2), nullable=True)
    total_cost = Column(Numeric(14, 2), nullable=True)

    reference = Column(String, nullable=True)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    performed_by = Column(String, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    product = relationship("Product")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "supplier_id": self.supplier_id,
            "batch_id": self.batch_id,
            "type": self.type,
            "quantity": int(self.quantity),
            "previous_qty": int(self.previous_qty),
            "new_qty": int(self.new_qty),
            "unit_cost": float(self.unit_cost) if self.unit_cost is not None else None,
            "total_cost": float(self.total_cost) if self.total_cost is not None else None,
            "reference": self.reference,
            "reason": self.reason,
            "notes": self.notes,
            "performed_by": self.performed_by,
            "created_at": self.created_at,
        }
