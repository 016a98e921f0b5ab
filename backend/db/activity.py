import uuid
from fastapi.encoders import jsonable_encoder
from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.ext.asyncio import AsyncSession

from .base import Base, utcnow


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    actor_id = Column(GUID, nullable=False)

    entity_type = Column(String(20), nullable=False, index=True)  # product|tag|category|sale|supplier|batch
    entity_id = Column(GUID, nullable=False, index=True)
    action = Column(String(20), nullable=False)  # create|update|delete|stock_adjustment
    changes = Column(JSON, nullable=True)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "changes": self.changes,
            "note": self.note,
            "created_at": self.created_at,
        }


def log_activity(
    db: AsyncSession,
    *,
    user_id,
    entity_type: str,
    entity_id,
    action: str,
    changes: dict = None,
    note: str = None,
    actor_id=None,
) -> ActivityLog:
    """Stage an activity row on the caller's transaction; it commits with the change it describes."""
    row = ActivityLog(
        user_id=user_id,
        actor_id=actor_id or user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        changes=jsonable_encoder(changes) if changes else None,
        note=note,
    )
    db.add(row)
    return row
