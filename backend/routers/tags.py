from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.logging import get_logger
from db.activity import log_activity
from db.database import get_async_session, ProductTag as ProductTagModel, Tag as TagModel
from db.users import User
from routers.categories import name_conflict
from schemas.catalog import TagRead, TagWrite

router = APIRouter()
logger = get_logger(__name__)


async def _get_tag(db: AsyncSession, user: User, tag_id: UUID) -> TagModel:
    res = await db.execute(select(TagModel).where(TagModel.id == tag_id, TagModel.user_id == user.id))
    tag = res.scalar_one_or_none()
    if not tag:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    return tag


async def _ensure_unique(db: AsyncSession, user: User, name: str, exclude_id: UUID = None):
    stmt = select(TagModel.id).where(TagModel.user_id == user.id, func.lower(TagModel.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(TagModel.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise name_conflict("A tag with this name already exists")


@router.get("/", response_model=List[TagRead])
async def list_tags(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(TagModel, func.count(ProductTagModel.product_id))
        .outerjoin(ProductTagModel, ProductTagModel.tag_id == TagModel.id)
        .where(TagModel.user_id == user.id)
        .group_by(TagModel.id)
        .order_by(func.lower(TagModel.name).asc())
    )
    return [TagRead(**t.to_schema, product_count=int(count or 0)) for t, count in res.all()]


@router.post("/", response_model=TagRead, status_code=status.HTTP_201_CREATED)
async def create_tag(
    payload: TagWrite,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    await _ensure_unique(db, user, payload.name)
    try:
        tag = TagModel(user_id=user.id, name=payload.name)
        db.add(tag)
        await db.flush()
        log_activity(
            db,
            user_id=user.id,
            entity_type="tag",
            entity_id=tag.id,
            action="create",
            changes={"name": tag.name},
        )
        await db.commit()
        return TagRead(**tag.to_schema)
    except Exception as e:
        await db.rollback()
        logger.exception("create_tag failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create tag: {e}")


@router.patch("/{tag_id}", response_model=TagRead)
async def rename_tag(
    tag_id: UUID,
    payload: TagWrite,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    tag = await _get_tag(db, user, tag_id)
    await _ensure_unique(db, user, payload.name, exclude_id=tag.id)
    try:
        old_name = tag.name
        tag.name = payload.name
        log_activity(
            db,
            user_id=user.id,
            entity_type="tag",
            entity_id=tag.id,
            action="update",
            changes={"name": {"from": old_name, "to": payload.name}},
        )
        await db.commit()
        res = await db.execute(select(func.count(ProductTagModel.product_id)).where(ProductTagModel.tag_id == tag.id))
        return TagRead(**tag.to_schema, product_count=int(res.scalar_one() or 0))
    except Exception as e:
        await db.rollback()
        logger.exception("rename_tag failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to update tag: {e}")


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag(
    tag_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    tag = await _get_tag(db, user, tag_id)
    try:
        log_activity(
            db,
            user_id=user.id,
            entity_type="tag",
            entity_id=tag.id,
            action="delete",
            changes={"name": tag.name},
        )
        await db.delete(tag)
        await db.commit()
        return None
    except Exception as e:
        await db.rollback()
        logger.exception("delete_tag failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to delete tag: {e}")
