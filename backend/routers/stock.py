from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.logging import get_logger
from core.stock import MOVEMENT_TYPES, InsufficientStock, alert_for_quantity, apply_movement
from db.activity import log_activity
from db.database import (
    get_async_session,
    utcnow,
    Batch as BatchModel,
    Product as ProductModel,
    StockAlert as StockAlertModel,
    StockMovement as StockMovementModel,
    Supplier as SupplierModel,
)
from db.users import User
from schemas.inventory import StockAdjustment, StockMovementCreate, StockMovementRead, to_naive_utc

router = APIRouter()
logger = get_logger(__name__)

_QUANTITY_ALERTS = ("LOW_STOCK", "OUT_OF_STOCK")


async def get_owned_product(db: AsyncSession, user: User, product_id: UUID, *, for_update: bool = False) -> ProductModel:
    stmt = select(ProductModel).where(ProductModel.id == product_id, ProductModel.user_id == user.id)
    if for_update:
        stmt = stmt.with_for_update()
    product = (await db.execute(stmt)).scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


def record_movement(
    *,
    db: AsyncSession,
    user: User,
    product: ProductModel,
    movement_type: str,
    quantity: int,
    previous_qty: int,
    new_qty: int,
    unit_cost: Optional[float] = None,
    supplier_id: Optional[UUID] = None,
    batch_id: Optional[UUID] = None,
    reference: Optional[str] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> StockMovementModel:
    total_cost = None
    if unit_cost is not None:
        total_cost = Decimal(str(unit_cost)) * int(quantity)
    movement = StockMovementModel(
        user_id=user.id,
        product_id=product.id,
        supplier_id=supplier_id,
        batch_id=batch_id,
        type=movement_type,
        quantity=int(quantity),
        previous_qty=int(previous_qty),
        new_qty=int(new_qty),
        unit_cost=Decimal(str(unit_cost)) if unit_cost is not None else None,
        total_cost=total_cost,
        reference=reference,
        reason=reason,
        notes=notes,
        performed_by=user.email,
    )
    db.add(movement)
    return movement


async def evaluate_stock_alerts(db: AsyncSession, user: User, product: ProductModel) -> Optional[StockAlertModel]:
    """
    Raise a LOW_STOCK/OUT_OF_STOCK alert for the product's current quantity.

    Open quantity alerts of another type are resolved. An open alert of the
    same type, acknowledged or not, is kept instead of raising a duplicate.
    """
    qty = int(product.quantity or 0)
    wanted = alert_for_quantity(qty, product.low_stock_at)
    wanted_type = wanted[0] if wanted else None

    res = await db.execute(
        select(StockAlertModel)
        .where(StockAlertModel.user_id == user.id)
        .where(StockAlertModel.product_id == product.id)
        .where(StockAlertModel.type.in_(_QUANTITY_ALERTS))
        .where(StockAlertModel.resolved_at.is_(None))
    )
    open_alerts = res.scalars().all()
    now = utcnow()
    existing = None
    for a in open_alerts:
        if a.type == wanted_type:
            existing = a
        else:
            a.resolved_at = now

    if wanted is None or existing is not None:
        return existing

    alert_type, message = wanted
    alert = StockAlertModel(
        user_id=user.id,
        product_id=product.id,
        type=alert_type,
        message=message,
        threshold=product.low_stock_at,
        current_value=qty,
        acknowledged=False,
    )
    db.add(alert)
    logger.info(f"{alert_type} alert raised for product {product.id} (qty={qty})")
    return alert


async def _check_refs(db: AsyncSession, user: User, supplier_id: Optional[UUID], batch_id: Optional[UUID], product_id: UUID):
    if supplier_id:
        res = await db.execute(
            select(SupplierModel.id).where(SupplierModel.id == supplier_id, SupplierModel.user_id == user.id)
        )
        if res.scalar_one_or_none() is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Supplier not found")
    if batch_id:
        res = await db.execute(
            select(BatchModel.id).where(
                BatchModel.id == batch_id,
                BatchModel.user_id == user.id,
                BatchModel.product_id == product_id,
            )
        )
        if res.scalar_one_or_none() is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Batch not found")


@router.post("/movements", response_model=StockMovementRead, status_code=status.HTTP_201_CREATED)
async def create_movement(
    payload: StockMovementCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        product = await get_owned_product(db, user, payload.product_id, for_update=True)
        await _check_refs(db, user, payload.supplier_id, payload.batch_id, product.id)

        previous_qty = int(product.quantity or 0)
        try:
            new_qty = apply_movement(previous_qty, payload.type, payload.quantity)
        except InsufficientStock as e:
            logger.warning(f"Rejected {payload.type} of {payload.quantity} for product {product.id}: available {e.available}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Insufficient stock for {product.name}. Available: {e.available}",
            )

        movement = record_movement(
            db=db,
            user=user,
            product=product,
            movement_type=payload.type,
            quantity=payload.quantity,
            previous_qty=previous_qty,
            new_qty=new_qty,
            unit_cost=payload.unit_cost,
            supplier_id=payload.supplier_id,
            batch_id=payload.batch_id,
            reference=payload.reference,
            reason=payload.reason,
            notes=payload.notes,
        )
        product.quantity = new_qty
        await evaluate_stock_alerts(db, user, product)
        log_activity(
            db,
            user_id=user.id,
            entity_type="product",
            entity_id=product.id,
            action="stock_adjustment",
            changes={"type": payload.type, "quantity": payload.quantity, "previous_qty": previous_qty, "new_qty": new_qty},
            note=f"{payload.type} {payload.quantity} x {product.name}",
        )
        await db.commit()
        await db.refresh(movement)
        logger.info(f"Stock movement {payload.type} on {product.id}: {previous_qty} -> {new_qty}")
        return StockMovementRead(**movement.to_schema)

    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("create_movement failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create movement: {e}")


@router.post("/adjust", response_model=StockMovementRead, status_code=status.HTTP_201_CREATED)
async def adjust_stock(
    payload: StockAdjustment,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Set a product's quantity outright; the movement records the size of the change."""
    try:
        product = await get_owned_product(db, user, payload.product_id, for_update=True)
        previous_qty = int(product.quantity or 0)
        new_qty = int(payload.new_quantity)

        movement = record_movement(
            db=db,
            user=user,
            product=product,
            movement_type="ADJUSTMENT",
            quantity=abs(new_qty - previous_qty),
            previous_qty=previous_qty,
            new_qty=new_qty,
            reason=payload.reason,
            notes=payload.notes,
        )
        product.quantity = new_qty
        await evaluate_stock_alerts(db, user, product)
        log_activity(
            db,
            user_id=user.id,
            entity_type="product",
            entity_id=product.id,
            action="stock_adjustment",
            changes={"previous_qty": previous_qty, "new_qty": new_qty, "reason": payload.reason},
            note=f"Adjusted stock of {product.name} from {previous_qty} to {new_qty}",
        )
        await db.commit()
        await db.refresh(movement)
        return StockMovementRead(**movement.to_schema)

    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("adjust_stock failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to adjust stock: {e}")


@router.get("/movements", response_model=List[StockMovementRead])
async def list_movements(
    type: Optional[str] = Query(None, pattern="^(IN|OUT|ADJUSTMENT|RETURN)$"),
    product_id: Optional[UUID] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=1000),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    stmt = select(StockMovementModel).where(StockMovementModel.user_id == user.id)
    if type:
        stmt = stmt.where(StockMovementModel.type == type)
    if product_id:
        stmt = stmt.where(StockMovementModel.product_id == product_id)
    if start:
        stmt = stmt.where(StockMovementModel.created_at >= to_naive_utc(start))
    if end:
        stmt = stmt.where(StockMovementModel.created_at <= to_naive_utc(end))
    stmt = stmt.order_by(StockMovementModel.created_at.desc()).limit(limit)
    res = await db.execute(stmt)
    return [StockMovementRead(**m.to_schema) for m in res.scalars().all()]


@router.get("/products/{product_id}/history", response_model=List[StockMovementRead])
async def product_stock_history(
    product_id: UUID,
    limit: int = Query(50, ge=1, le=1000),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    await get_owned_product(db, user, product_id)
    res = await db.execute(
        select(StockMovementModel)
        .where(StockMovementModel.user_id == user.id)
        .where(StockMovementModel.product_id == product_id)
        .order_by(StockMovementModel.created_at.desc())
        .limit(limit)
    )
    return [StockMovementRead(**m.to_schema) for m in res.scalars().all()]


async def movement_totals(
    db: AsyncSession,
    user: User,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Dict[str, int]:
    stmt = (
        select(StockMovementModel.type, func.coalesce(func.sum(StockMovementModel.quantity), 0))
        .where(StockMovementModel.user_id == user.id)
        .group_by(StockMovementModel.type)
    )
    if start:
        stmt = stmt.where(StockMovementModel.created_at >= to_naive_utc(start))
    if end:
        stmt = stmt.where(StockMovementModel.created_at <= to_naive_utc(end))
    res = await db.execute(stmt)
    totals = {t: 0 for t in MOVEMENT_TYPES}
    for movement_type, total in res.all():
        totals[movement_type] = int(total or 0)
    return totals


@router.get("/totals", response_model=Dict[str, int])
async def get_movement_totals(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    return await movement_totals(db, user, start, end)
