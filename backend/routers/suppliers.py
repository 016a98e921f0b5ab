from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.auth import current_active_user
from core.logging import get_logger
from db.activity import log_activity
from db.database import (
    get_async_session,
    ProductSupplier as ProductSupplierModel,
    Supplier as SupplierModel,
)
from db.users import User
from routers.stock import get_owned_product
from schemas.suppliers import (
    ProductSupplierLink,
    ProductSupplierRead,
    ProductSupplierUpdate,
    SupplierCreate,
    SupplierRead,
    SupplierUpdate,
)

router = APIRouter()
logger = get_logger(__name__)


async def _get_supplier(db: AsyncSession, user: User, supplier_id: UUID) -> SupplierModel:
    res = await db.execute(
        select(SupplierModel).where(SupplierModel.id == supplier_id, SupplierModel.user_id == user.id)
    )
    m = res.scalar_one_or_none()
    if not m:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Supplier not found")
    return m


async def _clear_primary(db: AsyncSession, product_id: UUID, keep_link_id: Optional[UUID] = None):
    stmt = (
        update(ProductSupplierModel)
        .where(ProductSupplierModel.product_id == product_id, ProductSupplierModel.is_primary.is_(True))
        .values(is_primary=False)
        .execution_options(synchronize_session="fetch")
    )
    if keep_link_id is not None:
        stmt = stmt.where(ProductSupplierModel.id != keep_link_id)
    await db.execute(stmt)


def _link_read(link: ProductSupplierModel) -> ProductSupplierRead:
    return ProductSupplierRead(
        **link.to_schema,
        supplier_name=link.supplier.name if link.supplier else None,
        product_name=link.product.name if link.product else None,
    )


async def _load_link(db: AsyncSession, link_id: UUID) -> ProductSupplierModel:
    res = await db.execute(
        select(ProductSupplierModel)
        .where(ProductSupplierModel.id == link_id)
        .options(selectinload(ProductSupplierModel.supplier), selectinload(ProductSupplierModel.product))
        .execution_options(populate_existing=True)
    )
    return res.scalar_one()


@router.get("/", response_model=List[SupplierRead])
async def list_suppliers(
    active: Optional[bool] = None,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    stmt = select(SupplierModel).where(SupplierModel.user_id == user.id)
    if active is not None:
        stmt = stmt.where(SupplierModel.active.is_(active))
    res = await db.execute(stmt.order_by(func.lower(SupplierModel.name).asc()))
    return [SupplierRead(**s.to_schema) for s in res.scalars().all()]


@router.get("/{supplier_id}", response_model=SupplierRead)
async def get_supplier(
    supplier_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    m = await _get_supplier(db, user, supplier_id)
    return SupplierRead(**m.to_schema)


@router.post("/", response_model=SupplierRead, status_code=status.HTTP_201_CREATED)
async def create_supplier(
    payload: SupplierCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")

    existing = await db.execute(
        select(SupplierModel.id).where(SupplierModel.user_id == user.id, func.lower(SupplierModel.name) == name.lower())
    )
    if existing.first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Supplier already exists")

    try:
        data = payload.model_dump()
        data["name"] = name
        m = SupplierModel(user_id=user.id, **data)
        db.add(m)
        await db.flush()
        log_activity(
            db,
            user_id=user.id,
            entity_type="supplier",
            entity_id=m.id,
            action="create",
            changes=data,
            note=f"Created supplier {name}",
        )
        await db.commit()
        await db.refresh(m)
        logger.info(f"Created supplier {m.id} ({name})")
        return SupplierRead(**m.to_schema)
    except Exception as e:
        await db.rollback()
        logger.exception("create_supplier failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create supplier: {e}")


@router.patch("/{supplier_id}", response_model=SupplierRead)
async def update_supplier(
    supplier_id: UUID,
    payload: SupplierUpdate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    m = await _get_supplier(db, user, supplier_id)

    data = payload.model_dump(exclude_unset=True)
    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")
        clash = await db.execute(
            select(SupplierModel.id).where(
                SupplierModel.user_id == user.id,
                func.lower(SupplierModel.name) == name.lower(),
                SupplierModel.id != m.id,
            )
        )
        if clash.first() is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Supplier already exists")
        data["name"] = name
    if "active" in data and data["active"] is None:
        data.pop("active")

    try:
        changes = {}
        for field, value in data.items():
            if getattr(m, field) != value:
                changes[field] = {"from": getattr(m, field), "to": value}
                setattr(m, field, value)
        if changes:
            log_activity(
                db,
                user_id=user.id,
                entity_type="supplier",
                entity_id=m.id,
                action="update",
                changes=changes,
            )
        await db.commit()
        await db.refresh(m)
        return SupplierRead(**m.to_schema)
    except Exception as e:
        await db.rollback()
        logger.exception("update_supplier failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to update supplier: {e}")


@router.delete("/{supplier_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_supplier(
    supplier_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    m = await _get_supplier(db, user, supplier_id)
    try:
        log_activity(
            db,
            user_id=user.id,
            entity_type="supplier",
            entity_id=m.id,
            action="delete",
            changes={"name": m.name},
        )
        await db.delete(m)
        await db.commit()
        logger.info(f"Deleted supplier {supplier_id}")
        return None
    except Exception as e:
        await db.rollback()
        logger.exception("delete_supplier failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to delete supplier: {e}")


@router.get("/{supplier_id}/products", response_model=List[ProductSupplierRead])
async def list_supplier_products(
    supplier_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    supplier = await _get_supplier(db, user, supplier_id)
    res = await db.execute(
        select(ProductSupplierModel)
        .where(ProductSupplierModel.supplier_id == supplier.id)
        .options(selectinload(ProductSupplierModel.supplier), selectinload(ProductSupplierModel.product))
    )
    links = sorted(res.scalars().all(), key=lambda link: (link.product.name or "").lower())
    return [_link_read(link) for link in links]


@router.post("/{supplier_id}/products", response_model=ProductSupplierRead, status_code=status.HTTP_201_CREATED)
async def link_product(
    supplier_id: UUID,
    payload: ProductSupplierLink,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    """Link a product to a supplier; a primary link demotes the product's other links."""
    supplier = await _get_supplier(db, user, supplier_id)
    product = await get_owned_product(db, user, payload.product_id)

    existing = await db.execute(
        select(ProductSupplierModel.id).where(
            ProductSupplierModel.product_id == product.id,
            ProductSupplierModel.supplier_id == supplier.id,
        )
    )
    if existing.first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Product is already linked to this supplier")

    try:
        if payload.is_primary:
            await _clear_primary(db, product.id)
        link = ProductSupplierModel(
            product_id=product.id,
            supplier_id=supplier.id,
            supplier_sku=payload.supplier_sku,
            cost_price=Decimal(str(payload.cost_price)),
            lead_time_days=payload.lead_time_days,
            min_order_qty=payload.min_order_qty,
            is_primary=payload.is_primary,
        )
        db.add(link)
        await db.commit()
        logger.info(f"Linked product {product.id} to supplier {supplier.id}")
        return _link_read(await _load_link(db, link.id))
    except Exception as e:
        await db.rollback()
        logger.exception("link_product failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to link product: {e}")


@router.patch("/links/{link_id}", response_model=ProductSupplierRead)
async def update_link(
    link_id: UUID,
    payload: ProductSupplierUpdate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    res = await db.execute(
        select(ProductSupplierModel)
        .join(SupplierModel, ProductSupplierModel.supplier_id == SupplierModel.id)
        .where(ProductSupplierModel.id == link_id, SupplierModel.user_id == user.id)
    )
    link = res.scalar_one_or_none()
    if not link:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Supplier link not found")

    try:
        data = payload.model_dump(exclude_unset=True)
        if data.get("is_primary"):
            await _clear_primary(db, link.product_id, keep_link_id=link.id)
        for field, value in data.items():
            if value is None and field in ("cost_price", "is_primary"):
                continue
            if field == "cost_price":
                value = Decimal(str(value))
            setattr(link, field, value)
        await db.commit()
        return _link_read(await _load_link(db, link.id))
    except Exception as e:
        await db.rollback()
        logger.exception("update_link failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to update supplier link: {e}")


@router.delete("/{supplier_id}/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unlink_product(
    supplier_id: UUID,
    product_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    supplier = await _get_supplier(db, user, supplier_id)
    res = await db.execute(
        select(ProductSupplierModel).where(
            ProductSupplierModel.supplier_id == supplier.id,
            ProductSupplierModel.product_id == product_id,
        )
    )
    link = res.scalar_one_or_none()
    if not link:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Supplier link not found")
    try:
        await db.delete(link)
        await db.commit()
        return None
    except Exception as e:
        await db.rollback()
        logger.exception("unlink_product failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to unlink product: {e}")
