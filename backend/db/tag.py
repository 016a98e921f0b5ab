import uuid
from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class ProductTag(Base):
    """Association between products and tags"""
    __tablename__ = "product_tags"

    product_id = Column(GUID, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(GUID, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("user_id", "name", name="ux_tags_user_name"),)

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    products = relationship("Product", secondary="product_tags", back_populates="tags")

    @property
    def to_schema(self):
        return {"id": self.id, "name": self.name}
