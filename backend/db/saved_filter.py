import uuid
from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint

from .base import Base, utcnow


class SavedFilter(Base):
    """Named product-list filter; at most one per tenant is the default."""
    __tablename__ = "saved_filters"
    __table_args__ = (UniqueConstraint("user_id", "name", name="ux_saved_filters_user_name"),)

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    filters = Column(JSON, nullable=False, default=dict)
    is_default = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "filters": self.filters or {},
            "is_default": bool(self.is_default),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
