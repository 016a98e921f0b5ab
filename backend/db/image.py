import uuid
from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import Column, DateTime, ForeignKey, String, Text

from .base import Base, utcnow


class Image(Base):
    """ImageKit upload owned by a tenant."""
    __tablename__ = "images"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    file_id = Column(String(255), nullable=False, unique=True)
    url = Column(Text, nullable=False)
    name = Column(String(255), nullable=True)
    content_type = Column(String(255), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
