from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.auth import current_active_user
from core.logging import get_logger
from core.stock import (
    average_value,
    breakdown,
    daily_value_series,
    inventory_totals,
    movement_summary,
    value_by_category,
)
from db.database import (
    get_async_session,
    utcnow,
    Category as CategoryModel,
    InventoryValue as InventoryValueModel,
    Product as ProductModel,
)
from db.users import User
from routers.stock import movement_totals
from schemas.inventory import to_naive_utc
from schemas.products import ProductRead
from schemas.reports import (
    BreakdownEntry,
    DashboardReport,
    InventoryMetrics,
    InventoryReport,
    InventoryValueRead,
    MovementSummary,
    TopValueProduct,
)

router = APIRouter()
logger = get_logger(__name__)

RECENT_PRODUCT_DAYS = 7


async def _tenant_products(db: AsyncSession, user: User, *conds) -> list:
    res = await db.execute(
        select(ProductModel)
        .where(ProductModel.user_id == user.id, *conds)
        .options(selectinload(ProductModel.category), selectinload(ProductModel.tags))
    )
    return list(res.scalars().all())


def _entries(groups: dict) -> List[BreakdownEntry]:
    return [BreakdownEntry(label=label, count=g["count"], value=g["value"]) for label, g in groups.items()]


@router.get("/inventory", response_model=InventoryReport)
async def inventory_report(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    products = await _tenant_products(db, user)
    return InventoryReport(**inventory_totals(products).as_dict(), value_by_category=value_by_category(products))


@router.get("/metrics", response_model=InventoryMetrics)
async def inventory_metrics(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    totals = inventory_totals(await _tenant_products(db, user))
    return InventoryMetrics(**totals.as_dict(), average_value=round(average_value(totals), 2))


@router.get("/dashboard", response_model=DashboardReport)
async def dashboard(
    days: int = Query(90, ge=1, le=365),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    products = await _tenant_products(db, user)
    totals = inventory_totals(products)
    now = utcnow()
    recent_cutoff = now - timedelta(days=RECENT_PRODUCT_DAYS)

    res = await db.execute(select(func.count(CategoryModel.id)).where(CategoryModel.user_id == user.id))
    category_count = int(res.scalar_one() or 0)

    prices = [float(p.price or 0) for p in products]
    return DashboardReport(
        total_value=totals.total_value,
        total_products=totals.total_products,
        low_stock_count=totals.low_stock_count,
        recent_products=sum(1 for p in products if p.created_at and p.created_at >= recent_cutoff),
        average_price=round(sum(prices) / len(prices), 2) if prices else 0.0,
        total_units=totals.total_quantity,
        category_count=category_count,
        category_breakdown=_entries(breakdown(products, by="category")),
        manufacturer_breakdown=_entries(breakdown(products, by="manufacturer")),
        chart_data=daily_value_series(products, days=days, today=now.date()),
    )


@router.post("/snapshots", response_model=InventoryValueRead, status_code=status.HTTP_201_CREATED)
async def create_snapshot(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Record the tenant's current valuation."""
    try:
        totals = inventory_totals(await _tenant_products(db, user))
        snapshot = InventoryValueModel(user_id=user.id, **totals.as_dict())
        db.add(snapshot)
        await db.commit()
        await db.refresh(snapshot)
        logger.info(f"Inventory snapshot {snapshot.id} for user {user.id}: value={totals.total_value}")
        return InventoryValueRead(**snapshot.to_schema)
    except Exception as e:
        await db.rollback()
        logger.exception("create_snapshot failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create snapshot: {e}")


@router.get("/snapshots/latest", response_model=InventoryValueRead)
async def latest_snapshot(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(InventoryValueModel)
        .where(InventoryValueModel.user_id == user.id)
        .order_by(InventoryValueModel.snapshot_date.desc())
        .limit(1)
    )
    snapshot = res.scalar_one_or_none()
    if not snapshot:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No inventory snapshots yet")
    return InventoryValueRead(**snapshot.to_schema)


@router.get("/snapshots/trend", response_model=List[InventoryValueRead])
async def snapshot_trend(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    stmt = select(InventoryValueModel).where(InventoryValueModel.user_id == user.id)
    if start:
        stmt = stmt.where(InventoryValueModel.snapshot_date >= to_naive_utc(start))
    if end:
        stmt = stmt.where(InventoryValueModel.snapshot_date <= to_naive_utc(end))
    res = await db.execute(stmt.order_by(InventoryValueModel.snapshot_date.asc()))
    return [InventoryValueRead(**s.to_schema) for s in res.scalars().all()]


@router.get("/snapshots", response_model=List[InventoryValueRead])
async def list_snapshots(
    limit: int = Query(30, ge=1, le=365),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(InventoryValueModel)
        .where(InventoryValueModel.user_id == user.id)
        .order_by(InventoryValueModel.snapshot_date.desc())
        .limit(limit)
    )
    return [InventoryValueRead(**s.to_schema) for s in res.scalars().all()]


@router.get("/movement-summary", response_model=MovementSummary)
async def movement_summary_report(
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    totals = await movement_totals(db, user, start=utcnow() - timedelta(days=days))
    return MovementSummary(days=days, **movement_summary(totals))


@router.get("/top-products", response_model=List[TopValueProduct])
async def top_products_by_value(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    value = ProductModel.price * ProductModel.quantity
    res = await db.execute(
        select(ProductModel)
        .where(ProductModel.user_id == user.id)
        .order_by(value.desc(), ProductModel.name.asc())
        .limit(limit)
    )
    return [
        TopValueProduct(
            id=p.id,
            name=p.name,
            sku=p.sku,
            quantity=int(p.quantity or 0),
            price=float(p.price or 0),
            value=round(float(p.price or 0) * int(p.quantity or 0), 2),
        )
        for p in res.scalars().all()
    ]


@router.get("/low-stock", response_model=List[ProductRead])
async def low_stock_products(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    products = await _tenant_products(
        db,
        user,
        ProductModel.low_stock_at.is_not(None),
        ProductModel.quantity <= ProductModel.low_stock_at,
    )
    products.sort(key=lambda p: (p.quantity, p.name.lower()))
    return [ProductRead(**p.to_schema) for p in products]


@router.get("/out-of-stock", response_model=List[ProductRead])
async def out_of_stock_products(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    products = await _tenant_products(db, user, ProductModel.quantity == 0)
    products.sort(key=lambda p: p.name.lower())
    return [ProductRead(**p.to_schema) for p in products]
