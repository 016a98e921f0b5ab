from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel


class ActivityRead(BaseModel):
    id: UUID
    actor_id: UUID
    entity_type: str
    entity_id: UUID
    action: str
    changes: Optional[Any] = None
    note: Optional[str] = None
    created_at: datetime


class ActivityDelete(BaseModel):
    ids: List[UUID]
