import uuid

from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric

from ..base import Base, utcnow


class InventoryValue(Base):
    """Point-in-time valuation of a tenant's inventory."""
    __tablename__ = "inventory_values"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    total_products = Column(Integer, nullable=False, default=0)
    total_quantity = Column(Integer, nullable=False, default=0)
    total_value = Column(Numeric(14, 2), nullable=False, default=0)
    low_stock_count = Column(Integer, nullable=False, default=0)
    out_of_stock_count = Column(Integer, nullable=False, default=0)

    snapshot_date = Column(DateTime, nullable=False, default=utcnow, index=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "total_products": int(self.total_products),
            "total_quantity": int(self.total_quantity),
            "total_value": float(self.total_value or 0),
            "low_stock_count": int(self.low_stock_count),
            "out_of_stock_count": int(self.out_of_stock_count),
            "snapshot_date": self.snapshot_date,
        }
