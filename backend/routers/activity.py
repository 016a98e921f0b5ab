from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.logging import get_logger
from db.database import get_async_session, ActivityLog as ActivityLogModel
from db.users import User
from schemas.activity import ActivityDelete, ActivityRead

router = APIRouter()
logger = get_logger(__name__)


@router.get("/", response_model=List[ActivityRead])
async def list_activity(
    entity_type: Optional[str] = Query(None, pattern="^(product|tag|category|sale|supplier|batch)$"),
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    stmt = select(ActivityLogModel).where(ActivityLogModel.user_id == user.id)
    if entity_type:
        stmt = stmt.where(ActivityLogModel.entity_type == entity_type)
    res = await db.execute(stmt.order_by(ActivityLogModel.created_at.desc()).limit(limit))
    return [ActivityRead(**row.to_schema) for row in res.scalars().all()]


@router.delete("/", response_model=Dict[str, int])
async def delete_activity(
    payload: ActivityDelete,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Delete log rows by id; rows of other tenants are left alone."""
    if not payload.ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No ids given")
    try:
        res = await db.execute(
            delete(ActivityLogModel)
            .where(ActivityLogModel.id.in_(payload.ids), ActivityLogModel.user_id == user.id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        logger.info(f"Deleted {res.rowcount} activity rows for user {user.id}")
        return {"deleted": int(res.rowcount or 0)}
    except Exception as e:
        await db.rollback()
        logger.exception("delete_activity failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to delete activity: {e}")
