import uuid

from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..base import Base, utcnow


class StockAlert(Base):
    __tablename__ = "stock_alerts"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(GUID, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    # Set on EXPIRING_SOON/EXPIRED alerts; one open alert per batch and type.
    batch_id = Column(GUID, ForeignKey("batches.id", ondelete="SET NULL"), nullable=True, index=True)

    # 'LOW_STOCK' | 'OUT_OF_STOCK' | 'EXPIRING_SOON' | 'EXPIRED'
    type = Column(String(20), nullable=False, index=True)
    message = Column(Text, nullable=False)
    threshold = Column(Integer, nullable=True)
    current_value = Column(Integer, nullable=True)

    acknowledged = Column(Boolean, nullable=False, default=False, index=True)
    acknowledged_by = Column(String, nullable=True)
    acknowledged_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    resolved_at = Column(DateTime, nullable=True)

    product = relationship("Product")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "batch_id": self.batch_id,
            "type": self.type,
            "message": self.message,
            "threshold": self.threshold,
            "current_value": self.current_value,
            "acknowledged": bool(self.acknowledged),
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": self.acknowledged_at,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
        }
