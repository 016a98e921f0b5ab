from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.logging import get_logger
from db.activity import log_activity
from db.database import get_async_session, Category as CategoryModel, Product as ProductModel
from db.users import User
from schemas.catalog import CategoryRead, CategoryWrite

router = APIRouter()
logger = get_logger(__name__)


def name_conflict(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"message": message, "errors": {"name": [message]}},
    )


async def _get_category(db: AsyncSession, user: User, category_id: UUID) -> CategoryModel:
    res = await db.execute(
        select(CategoryModel).where(CategoryModel.id == category_id, CategoryModel.user_id == user.id)
    )
    category = res.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


async def _ensure_unique(db: AsyncSession, user: User, name: str, exclude_id: UUID = None):
    stmt = select(CategoryModel.id).where(
        CategoryModel.user_id == user.id,
        func.lower(CategoryModel.name) == name.lower(),
    )
    if exclude_id is not None:
        stmt = stmt.where(CategoryModel.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise name_conflict("A category with this name already exists")


async def _product_count(db: AsyncSession, category_id: UUID) -> int:
    res = await db.execute(select(func.count(ProductModel.id)).where(ProductModel.category_id == category_id))
    return int(res.scalar_one() or 0)


@router.get("/", response_model=List[CategoryRead])
async def list_categories(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(CategoryModel, func.count(ProductModel.id))
        .outerjoin(ProductModel, ProductModel.category_id == CategoryModel.id)
        .where(CategoryModel.user_id == user.id)
        .group_by(CategoryModel.id)
        .order_by(func.lower(CategoryModel.name).asc())
    )
    return [CategoryRead(**c.to_schema, product_count=int(count or 0)) for c, count in res.all()]


@router.post("/", response_model=CategoryRead, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryWrite,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    await _ensure_unique(db, user, payload.name)
    try:
        category = CategoryModel(user_id=user.id, name=payload.name)
        db.add(category)
        await db.flush()
        log_activity(
            db,
            user_id=user.id,
            entity_type="category",
            entity_id=category.id,
            action="create",
            changes={"name": category.name},
            note=f"Created category {category.name}",
        )
        await db.commit()
        logger.info(f"Created category {category.id} ({category.name})")
        return CategoryRead(**category.to_schema, product_count=0)
    except Exception as e:
        await db.rollback()
        logger.exception("create_category failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create category: {e}")


@router.patch("/{category_id}", response_model=CategoryRead)
async def update_category(
    category_id: UUID,
    payload: CategoryWrite,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    category = await _get_category(db, user, category_id)
    await _ensure_unique(db, user, payload.name, exclude_id=category.id)
    try:
        old_name = category.name
        category.name = payload.name
        if old_name != payload.name:
            log_activity(
                db,
                user_id=user.id,
                entity_type="category",
                entity_id=category.id,
                action="update",
                changes={"name": {"from": old_name, "to": payload.name}},
                note=f"Renamed category {old_name} to {payload.name}",
            )
        await db.commit()
        await db.refresh(category)
        return CategoryRead(**category.to_schema, product_count=await _product_count(db, category.id))
    except Exception as e:
        await db.rollback()
        logger.exception("update_category failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to update category: {e}")


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Delete a category; its products become uncategorized."""
    category = await _get_category(db, user, category_id)
    try:
        await db.execute(
            update(ProductModel)
            .where(ProductModel.category_id == category.id, ProductModel.user_id == user.id)
            .values(category_id=None)
            .execution_options(synchronize_session=False)
        )
        log_activity(
            db,
            user_id=user.id,
            entity_type="category",
            entity_id=category.id,
            action="delete",
            changes={"name": category.name},
            note=f"Deleted category {category.name}",
        )
        await db.delete(category)
        await db.commit()
        logger.info(f"Deleted category {category_id}")
        return None
    except Exception as e:
        await db.rollback()
        logger.exception("delete_category failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to delete category: {e}")
