from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.logging import get_logger
from db.database import get_async_session, SavedFilter as SavedFilterModel
from db.users import User
from routers.categories import name_conflict
from schemas.saved_filters import SavedFilterCreate, SavedFilterRead

router = APIRouter()
logger = get_logger(__name__)


async def _get_saved_filter(db: AsyncSession, user: User, filter_id: UUID) -> SavedFilterModel:
    res = await db.execute(
        select(SavedFilterModel).where(SavedFilterModel.id == filter_id, SavedFilterModel.user_id == user.id)
    )
    saved = res.scalar_one_or_none()
    if not saved:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Saved filter not found")
    return saved


async def _clear_default(db: AsyncSession, user: User):
    await db.execute(
        update(SavedFilterModel)
        .where(SavedFilterModel.user_id == user.id, SavedFilterModel.is_default.is_(True))
        .values(is_default=False)
    )


@router.get("/", response_model=List[SavedFilterRead])
async def list_saved_filters(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Default filter first, then newest."""
    res = await db.execute(
        select(SavedFilterModel)
        .where(SavedFilterModel.user_id == user.id)
        .order_by(SavedFilterModel.is_default.desc(), SavedFilterModel.created_at.desc())
    )
    return [SavedFilterRead(**f.to_schema) for f in res.scalars().all()]


@router.post("/", response_model=SavedFilterRead, status_code=status.HTTP_201_CREATED)
async def create_saved_filter(
    payload: SavedFilterCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(SavedFilterModel.id).where(
            SavedFilterModel.user_id == user.id,
            SavedFilterModel.name == payload.name,
        )
    )
    if res.first() is not None:
        raise name_conflict("Filter name already in use")

    try:
        if payload.is_default:
            await _clear_default(db, user)
        saved = SavedFilterModel(
            user_id=user.id,
            name=payload.name,
            filters=payload.filters.model_dump(),
            is_default=payload.is_default,
        )
        db.add(saved)
        await db.commit()
        await db.refresh(saved)
        logger.info(f"Saved filter {saved.id} ({saved.name}) for user {user.id}")
        return SavedFilterRead(**saved.to_schema)
    except Exception as e:
        await db.rollback()
        logger.exception("create_saved_filter failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to save filter: {e}")


@router.post("/{filter_id}/default", response_model=SavedFilterRead)
async def set_default_filter(
    filter_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    saved = await _get_saved_filter(db, user, filter_id)
    try:
        await _clear_default(db, user)
        saved.is_default = True
        await db.commit()
        await db.refresh(saved)
        return SavedFilterRead(**saved.to_schema)
    except Exception as e:
        await db.rollback()
        logger.exception("set_default_filter failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to set default filter: {e}")


@router.delete("/{filter_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_saved_filter(
    filter_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    saved = await _get_saved_filter(db, user, filter_id)
    try:
        await db.delete(saved)
        await db.commit()
        return None
    except Exception as e:
        await db.rollback()
        logger.exception("delete_saved_filter failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to delete filter: {e}")
