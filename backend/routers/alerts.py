from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.logging import get_logger
from db.database import get_async_session, utcnow, StockAlert as StockAlertModel
from db.users import User
from routers.stock import get_owned_product
from schemas.inventory import BulkAcknowledge, StockAlertCreate, StockAlertRead

router = APIRouter()
logger = get_logger(__name__)


async def _get_alert(db: AsyncSession, user: User, alert_id: UUID) -> StockAlertModel:
    res = await db.execute(
        select(StockAlertModel).where(StockAlertModel.id == alert_id, StockAlertModel.user_id == user.id)
    )
    alert = res.scalar_one_or_none()
    if not alert:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alert not found")
    return alert


@router.get("/", response_model=List[StockAlertRead])
async def list_alerts(
    include_acknowledged: bool = False,
    type: Optional[str] = Query(None, pattern="^(LOW_STOCK|OUT_OF_STOCK|EXPIRING_SOON|EXPIRED)$"),
    product_id: Optional[UUID] = None,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    stmt = select(StockAlertModel).where(StockAlertModel.user_id == user.id)
    if not include_acknowledged:
        stmt = stmt.where(StockAlertModel.acknowledged.is_(False))
    if type:
        stmt = stmt.where(StockAlertModel.type == type)
    if product_id:
        stmt = stmt.where(StockAlertModel.product_id == product_id)
    res = await db.execute(stmt.order_by(StockAlertModel.created_at.desc()))
    return [StockAlertRead(**a.to_schema) for a in res.scalars().all()]


@router.get("/unacknowledged-count", response_model=Dict[str, int])
async def unacknowledged_count(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(func.count(StockAlertModel.id)).where(
            StockAlertModel.user_id == user.id,
            StockAlertModel.acknowledged.is_(False),
        )
    )
    return {"count": int(res.scalar_one() or 0)}


@router.post("/", response_model=StockAlertRead, status_code=status.HTTP_201_CREATED)
async def create_alert(
    payload: StockAlertCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    await get_owned_product(db, user, payload.product_id)
    try:
        alert = StockAlertModel(user_id=user.id, acknowledged=False, **payload.model_dump())
        db.add(alert)
        await db.commit()
        await db.refresh(alert)
        logger.info(f"Manual {alert.type} alert {alert.id} for product {alert.product_id}")
        return StockAlertRead(**alert.to_schema)
    except Exception as e:
        await db.rollback()
        logger.exception("create_alert failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create alert: {e}")


@router.post("/acknowledge", response_model=Dict[str, int])
async def acknowledge_alerts(
    payload: BulkAcknowledge,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Acknowledge several alerts; ids of other tenants are ignored."""
    if not payload.alert_ids:
        return {"acknowledged": 0}
    try:
        res = await db.execute(
            update(StockAlertModel)
            .where(
                StockAlertModel.id.in_(payload.alert_ids),
                StockAlertModel.user_id == user.id,
                StockAlertModel.acknowledged.is_(False),
            )
            .values(acknowledged=True, acknowledged_by=user.email, acknowledged_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return {"acknowledged": int(res.rowcount or 0)}
    except Exception as e:
        await db.rollback()
        logger.exception("acknowledge_alerts failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to acknowledge alerts: {e}")


@router.post("/{alert_id}/acknowledge", response_model=StockAlertRead)
async def acknowledge_alert(
    alert_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    alert = await _get_alert(db, user, alert_id)
    if not alert.acknowledged:
        alert.acknowledged = True
        alert.acknowledged_by = user.email
        alert.acknowledged_at = utcnow()
        await db.commit()
        await db.refresh(alert)
    return StockAlertRead(**alert.to_schema)


@router.post("/{alert_id}/resolve", response_model=StockAlertRead)
async def resolve_alert(
    alert_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    alert = await _get_alert(db, user, alert_id)
    if alert.resolved_at is None:
        alert.resolved_at = utcnow()
        await db.commit()
        await db.refresh(alert)
    return StockAlertRead(**alert.to_schema)


@router.delete("/{alert_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_alert(
    alert_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    alert = await _get_alert(db, user, alert_id)
    await db.delete(alert)
    await db.commit()
    return None
