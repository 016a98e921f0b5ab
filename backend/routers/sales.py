from collections import defaultdict
from datetime import timedelta
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.auth import current_active_user
from core.logging import get_logger
from core.stock import daily_amount_series, invoice_prefix, next_invoice_number, sale_totals
from db.activity import log_activity
from db.database import (
    get_async_session,
    utcnow,
    Product as ProductModel,
    Sale as SaleModel,
    SaleItem as SaleItemModel,
)
from db.users import User
from routers.stock import evaluate_stock_alerts, record_movement
from schemas.sales import SaleCreate, SaleCreated, SaleRead, SalesAnalytics, TopSellingProduct

router = APIRouter()
logger = get_logger(__name__)

RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90}


async def _next_invoice(db: AsyncSession) -> str:
    today = utcnow().date()
    res = await db.execute(
        select(func.max(SaleModel.invoice_number)).where(SaleModel.invoice_number.like(f"{invoice_prefix(today)}-%"))
    )
    return next_invoice_number(today, res.scalar_one_or_none())


@router.post("/", response_model=SaleCreated, status_code=status.HTTP_201_CREATED)
async def create_sale(
    payload: SaleCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Record a completed sale.

    Stock for every line is checked and decremented in the same transaction
    that writes the sale, its items, one OUT movement per line and the
    activity entry.
    """
    if not payload.items:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No items in sale")

    try:
        ids = list(dict.fromkeys(item.product_id for item in payload.items))
        res = await db.execute(
            select(ProductModel)
            .where(ProductModel.id.in_(ids), ProductModel.user_id == user.id)
            .with_for_update()
        )
        products = {p.id: p for p in res.scalars().all()}

        wanted = defaultdict(int)
        for item in payload.items:
            product = products.get(item.product_id)
            if product is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Product not found: {item.product_id}")
            wanted[product.id] += item.quantity
        for product_id, qty in wanted.items():
            product = products[product_id]
            if int(product.quantity or 0) < qty:
                logger.warning(f"Sale rejected: {product.name} has {product.quantity}, requested {qty}")
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Insufficient stock for {product.name}. Available: {product.quantity}",
                )

        totals = sale_totals(payload.items, payload.overall_discount, payload.tax_rate)
        if totals.total_amount < 0:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Discount exceeds sale subtotal")

        sale = SaleModel(
            user_id=user.id,
            invoice_number=await _next_invoice(db),
            customer=payload.customer,
            payment_method=payload.payment_method,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax=totals.tax,
            total_amount=totals.total_amount,
            status="completed",
            notes=payload.notes,
        )
        db.add(sale)
        await db.flush()

        for line in totals.lines:
            product = products[line.product_id]
            db.add(
                SaleItemModel(
                    sale_id=sale.id,
                    product_id=product.id,
                    product_name=product.name,
                    quantity=line.quantity,
                    unit_price=line.price,
                    discount=line.discount,
                    subtotal=line.subtotal,
                    total_price=line.total_price,
                )
            )
            previous_qty = int(product.quantity or 0)
            product.quantity = previous_qty - line.quantity
            record_movement(
                db=db,
                user=user,
                product=product,
                movement_type="OUT",
                quantity=line.quantity,
                previous_qty=previous_qty,
                new_qty=product.quantity,
                reference=sale.invoice_number,
                reason="Sale",
            )

        for product_id in wanted:
            await evaluate_stock_alerts(db, user, products[product_id])

        log_activity(
            db,
            user_id=user.id,
            entity_type="sale",
            entity_id=sale.id,
            action="create",
            changes={
                "invoice_number": sale.invoice_number,
                "items": len(totals.lines),
                "total_amount": totals.total_amount,
            },
            note=f"Sale {sale.invoice_number}",
        )
        await db.commit()
        logger.info(f"Sale {sale.invoice_number} recorded for user {user.id}: {totals.total_amount}")
        return SaleCreated(sale_id=sale.id, invoice_number=sale.invoice_number, total_amount=float(totals.total_amount))

    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("create_sale failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create sale: {e}")


@router.get("/recent", response_model=List[SaleRead])
async def recent_sales(
    limit: int = Query(5, ge=1, le=100),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(SaleModel)
        .where(SaleModel.user_id == user.id)
        .options(selectinload(SaleModel.items))
        .order_by(SaleModel.created_at.desc())
        .limit(limit)
    )
    return [SaleRead(**s.to_schema) for s in res.scalars().all()]


@router.get("/analytics", response_model=SalesAnalytics)
async def sales_analytics(
    range: str = Query("30d", pattern="^(7d|30d|90d)$"),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    since = utcnow() - timedelta(days=RANGE_DAYS[range])
    res = await db.execute(
        select(SaleModel)
        .where(SaleModel.user_id == user.id)
        .where(SaleModel.status == "completed")
        .where(SaleModel.created_at >= since)
        .order_by(SaleModel.created_at.asc())
    )
    sales = res.scalars().all()
    revenue = sum(float(s.total_amount or 0) for s in sales)
    orders = len(sales)
    return SalesAnalytics(
        range=range,
        total_revenue=round(revenue, 2),
        total_orders=orders,
        average_order_value=round(revenue / orders, 2) if orders else 0.0,
        chart_data=daily_amount_series(sales),
    )


@router.get("/top-products", response_model=List[TopSellingProduct])
async def top_selling_products(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    units = func.sum(SaleItemModel.quantity)
    revenue = func.sum(SaleItemModel.total_price)
    res = await db.execute(
        select(SaleItemModel.product_id, SaleItemModel.product_name, units, revenue)
        .join(SaleModel, SaleItemModel.sale_id == SaleModel.id)
        .where(SaleModel.user_id == user.id, SaleModel.status == "completed")
        .group_by(SaleItemModel.product_id, SaleItemModel.product_name)
        .order_by(revenue.desc())
        .limit(limit)
    )
    return [
        TopSellingProduct(product_id=pid, product_name=name, units_sold=int(u or 0), revenue=float(r or 0))
        for pid, name, u, r in res.all()
    ]


@router.get("/{sale_id}", response_model=SaleRead)
async def get_sale(
    sale_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(SaleModel)
        .where(SaleModel.id == sale_id, SaleModel.user_id == user.id)
        .options(selectinload(SaleModel.items))
    )
    sale = res.scalar_one_or_none()
    if not sale:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sale not found")
    return SaleRead(**sale.to_schema)
