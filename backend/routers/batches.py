from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.logging import get_logger
from core.stock import EXPIRY_WINDOW_DAYS, expiry_alert
from db.activity import log_activity
from db.database import (
    get_async_session,
    utcnow,
    Batch as BatchModel,
    StockAlert as StockAlertModel,
)
from db.users import User
from routers.stock import get_owned_product
from schemas.inventory import BatchCreate, BatchRead, BatchUpdate

router = APIRouter()
logger = get_logger(__name__)


async def _get_batch(db: AsyncSession, user: User, batch_id: UUID) -> BatchModel:
    res = await db.execute(select(BatchModel).where(BatchModel.id == batch_id, BatchModel.user_id == user.id))
    batch = res.scalar_one_or_none()
    if not batch:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Batch not found")
    return batch


async def raise_expiry_alert(db: AsyncSession, user: User, batch: BatchModel, now: datetime) -> Optional[StockAlertModel]:
    """
    Stage an EXPIRING_SOON/EXPIRED alert for the batch.
    An open alert of the same type for the batch is refreshed instead of duplicated,
    and raising EXPIRED resolves the batch's open EXPIRING_SOON alert.
    """
    found = expiry_alert(batch.batch_number, batch.expires_at, now)
    if found is None:
        return None
    alert_type, message, days = found

    res = await db.execute(
        select(StockAlertModel).where(
            StockAlertModel.user_id == user.id,
            StockAlertModel.batch_id == batch.id,
            StockAlertModel.type.in_(("EXPIRING_SOON", "EXPIRED")),
            StockAlertModel.resolved_at.is_(None),
        )
    )
    existing = None
    for open_alert in res.scalars().all():
        if open_alert.type == alert_type:
            existing = open_alert
        elif alert_type == "EXPIRED":
            open_alert.resolved_at = now
    if existing is not None:
        existing.message = message
        existing.current_value = days
        return None

    alert = StockAlertModel(
        user_id=user.id,
        product_id=batch.product_id,
        batch_id=batch.id,
        type=alert_type,
        message=message,
        threshold=EXPIRY_WINDOW_DAYS,
        current_value=days,
        acknowledged=False,
    )
    db.add(alert)
    logger.info(f"{alert_type} alert raised for batch {batch.batch_number} ({days} days)")
    return alert


@router.get("/", response_model=List[BatchRead])
async def list_batches(
    product_id: Optional[UUID] = None,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    stmt = select(BatchModel).where(BatchModel.user_id == user.id)
    if product_id:
        stmt = stmt.where(BatchModel.product_id == product_id)
    res = await db.execute(stmt.order_by(BatchModel.received_at.desc()))
    return [BatchRead(**b.to_schema) for b in res.scalars().all()]


@router.get("/expiring", response_model=List[BatchRead])
async def list_expiring_batches(
    days: int = Query(EXPIRY_WINDOW_DAYS, ge=1, le=3650),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    now = utcnow()
    res = await db.execute(
        select(BatchModel)
        .where(BatchModel.user_id == user.id)
        .where(BatchModel.expires_at.is_not(None))
        .where(BatchModel.expires_at > now)
        .where(BatchModel.expires_at <= now + timedelta(days=days))
        .order_by(BatchModel.expires_at.asc())
    )
    return [BatchRead(**b.to_schema) for b in res.scalars().all()]


@router.get("/expired", response_model=List[BatchRead])
async def list_expired_batches(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(BatchModel)
        .where(BatchModel.user_id == user.id)
        .where(BatchModel.expires_at.is_not(None))
        .where(BatchModel.expires_at <= utcnow())
        .order_by(BatchModel.expires_at.asc())
    )
    return [BatchRead(**b.to_schema) for b in res.scalars().all()]


@router.post("/check-expiry", response_model=Dict[str, int])
async def check_expiry(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Raise alerts for every batch with stock left that is expired or expires within the window."""
    try:
        now = utcnow()
        res = await db.execute(
            select(BatchModel)
            .where(BatchModel.user_id == user.id)
            .where(BatchModel.quantity > 0)
            .where(BatchModel.expires_at.is_not(None))
            .where(BatchModel.expires_at <= now + timedelta(days=EXPIRY_WINDOW_DAYS))
        )
        batches = res.scalars().all()
        created = 0
        for batch in batches:
            if await raise_expiry_alert(db, user, batch, now) is not None:
                created += 1
        await db.commit()
        logger.info(f"Expiry check for user {user.id}: {len(batches)} batches, {created} alerts")
        return {"checked": len(batches), "alerts_created": created}
    except Exception as e:
        await db.rollback()
        logger.exception("check_expiry failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to check expiry: {e}")


@router.get("/{batch_id}", response_model=BatchRead)
async def get_batch(
    batch_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    return BatchRead(**(await _get_batch(db, user, batch_id)).to_schema)


@router.post("/", response_model=BatchRead, status_code=status.HTTP_201_CREATED)
async def create_batch(
    payload: BatchCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    product = await get_owned_product(db, user, payload.product_id)
    try:
        data = payload.model_dump(exclude_none=True)
        batch = BatchModel(user_id=user.id, **data)
        db.add(batch)
        await db.flush()
        await raise_expiry_alert(db, user, batch, utcnow())
        log_activity(
            db,
            user_id=user.id,
            entity_type="batch",
            entity_id=batch.id,
            action="create",
            changes=data,
            note=f"Received batch {batch.batch_number} of {product.name}",
        )
        await db.commit()
        await db.refresh(batch)
        return BatchRead(**batch.to_schema)
    except Exception as e:
        await db.rollback()
        logger.exception("create_batch failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create batch: {e}")


@router.patch("/{batch_id}", response_model=BatchRead)
async def update_batch(
    batch_id: UUID,
    payload: BatchUpdate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    batch = await _get_batch(db, user, batch_id)
    data = payload.model_dump(exclude_unset=True)
    if "batch_number" in data:
        number = (data["batch_number"] or "").strip()
        if not number:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="batch_number is required")
        data["batch_number"] = number
    for required in ("quantity", "received_at"):
        if required in data and data[required] is None:
            data.pop(required)

    manufactured = data.get("manufactured_at", batch.manufactured_at)
    expires = data.get("expires_at", batch.expires_at)
    if manufactured and expires and expires < manufactured:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="expires_at must be after manufactured_at")

    try:
        for field, value in data.items():
            setattr(batch, field, value)
        if "expires_at" in data:
            await raise_expiry_alert(db, user, batch, utcnow())
        log_activity(
            db,
            user_id=user.id,
            entity_type="batch",
            entity_id=batch.id,
            action="update",
            changes=data,
        )
        await db.commit()
        await db.refresh(batch)
        return BatchRead(**batch.to_schema)
    except Exception as e:
        await db.rollback()
        logger.exception("update_batch failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to update batch: {e}")


@router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_batch(
    batch_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    batch = await _get_batch(db, user, batch_id)
    try:
        log_activity(
            db,
            user_id=user.id,
            entity_type="batch",
            entity_id=batch.id,
            action="delete",
            changes={"batch_number": batch.batch_number},
        )
        await db.delete(batch)
        await db.commit()
        return None
    except Exception as e:
        await db.rollback()
        logger.exception("delete_batch failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to delete batch: {e}")
