import math
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from pydantic import ValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.auth import current_active_user
from core.config import settings
from core.csv_io import products_to_csv, read_product_rows, split_tags
from core.logging import get_logger
from db.activity import log_activity
from db.database import (
    get_async_session,
    Category as CategoryModel,
    Product as ProductModel,
    ProductSupplier as ProductSupplierModel,
    Supplier as SupplierModel,
    Tag as TagModel,
)
from db.users import User
from routers.stock import evaluate_stock_alerts, record_movement
from schemas.products import (
    ImportRowError,
    ProductCreate,
    ProductFilters,
    ProductImportResult,
    ProductPage,
    ProductRead,
    ProductUpdate,
)
from schemas.suppliers import ProductSupplierRead

router = APIRouter()
logger = get_logger(__name__)

UNCATEGORIZED_FILTER = "__uncategorized"

SORT_FIELDS = {
    "name": ProductModel.name,
    "sku": ProductModel.sku,
    "manufacturer": ProductModel.manufacturer,
    "model": ProductModel.model,
    "condition": ProductModel.condition,
    "quantity": ProductModel.quantity,
    "price": ProductModel.price,
    "updated_at": ProductModel.updated_at,
    "updatedAt": ProductModel.updated_at,
    "created_at": ProductModel.created_at,
    "createdAt": ProductModel.created_at,
}
DEFAULT_SORT = "created_at-desc"


def _order_by(sort: Optional[str]):
    field, _, direction = (sort or DEFAULT_SORT).rpartition("-")
    if not field:
        field, direction = direction, "asc"
    column = SORT_FIELDS.get(field, ProductModel.created_at)
    if direction.lower() == "asc":
        return [column.asc(), ProductModel.id.asc()]
    return [column.desc(), ProductModel.id.desc()]


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _filter_conditions(
    user: User,
    search: Optional[str],
    category: Optional[str],
    manufacturer: Optional[str],
    condition: Optional[str],
    low_stock: bool,
) -> list:
    conds = [ProductModel.user_id == user.id]
    term = (search or "").strip()
    if term:
        like = f"%{_escape_like(term)}%"
        conds.append(
            or_(
                ProductModel.name.ilike(like, escape="\\"),
                ProductModel.sku.ilike(like, escape="\\"),
                ProductModel.manufacturer.ilike(like, escape="\\"),
                CategoryModel.name.ilike(like, escape="\\"),
            )
        )
    if category and category != "all":
        if category == UNCATEGORIZED_FILTER:
            conds.append(ProductModel.category_id.is_(None))
        else:
            try:
                conds.append(ProductModel.category_id == UUID(category))
            except ValueError:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid category filter")
    if manufacturer and manufacturer != "all":
        conds.append(func.lower(ProductModel.manufacturer) == manufacturer.strip().lower())
    if condition and condition != "all":
        conds.append(ProductModel.condition == condition)
    if low_stock:
        conds.append(ProductModel.low_stock_at.is_not(None))
        conds.append(ProductModel.quantity <= ProductModel.low_stock_at)
    return conds


def _product_select():
    return (
        select(ProductModel)
        .outerjoin(CategoryModel, ProductModel.category_id == CategoryModel.id)
        .options(selectinload(ProductModel.category), selectinload(ProductModel.tags))
    )


async def load_product(db: AsyncSession, user: User, product_id: UUID) -> ProductModel:
    """Fetch a tenant's product with category and tags, refreshed from the database."""
    res = await db.execute(
        select(ProductModel)
        .where(ProductModel.id == product_id, ProductModel.user_id == user.id)
        .options(selectinload(ProductModel.category), selectinload(ProductModel.tags))
        .execution_options(populate_existing=True)
    )
    product = res.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


async def _resolve_category(db: AsyncSession, user: User, category_id: Optional[UUID]) -> Optional[CategoryModel]:
    if category_id is None:
        return None
    res = await db.execute(
        select(CategoryModel).where(CategoryModel.id == category_id, CategoryModel.user_id == user.id)
    )
    category = res.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


async def _resolve_tags(db: AsyncSession, user: User, tag_ids: Optional[List[UUID]]) -> List[TagModel]:
    ids = list(dict.fromkeys(tag_ids or []))
    if not ids:
        return []
    res = await db.execute(select(TagModel).where(TagModel.id.in_(ids), TagModel.user_id == user.id))
    tags = res.scalars().all()
    if len(tags) != len(ids):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    return list(tags)


@router.get("/", response_model=ProductPage)
async def list_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    manufacturer: Optional[str] = None,
    condition: Optional[str] = None,
    low_stock: bool = False,
    page: int = 0,
    page_size: Optional[int] = None,
    sort: Optional[str] = None,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    page = max(page, 0)
    if page_size is None:
        page_size = settings.default_page_size
    page_size = min(max(page_size, 1), settings.max_page_size)
    conds = _filter_conditions(user, search, category, manufacturer, condition, low_stock)

    count_stmt = (
        select(func.count(ProductModel.id))
        .select_from(ProductModel)
        .outerjoin(CategoryModel, ProductModel.category_id == CategoryModel.id)
        .where(*conds)
    )
    total = int((await db.execute(count_stmt)).scalar_one() or 0)

    stmt = _product_select().where(*conds).order_by(*_order_by(sort)).offset(page * page_size).limit(page_size)
    items = (await db.execute(stmt)).scalars().all()

    return ProductPage(
        items=[ProductRead(**p.to_schema) for p in items],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size),
        filters=ProductFilters(
            search=search,
            category=category,
            manufacturer=manufacturer,
            condition=condition,
            low_stock=low_stock,
            sort=sort or DEFAULT_SORT,
        ),
    )


@router.get("/manufacturers", response_model=List[str])
async def list_manufacturers(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(ProductModel.manufacturer)
        .where(ProductModel.user_id == user.id)
        .distinct()
        .order_by(ProductModel.manufacturer.asc())
    )
    return [m for m in res.scalars().all() if m]


@router.get("/export")
async def export_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    manufacturer: Optional[str] = None,
    condition: Optional[str] = None,
    low_stock: bool = False,
    sort: Optional[str] = None,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    conds = _filter_conditions(user, search, category, manufacturer, condition, low_stock)
    res = await db.execute(_product_select().where(*conds).order_by(*_order_by(sort)))
    content = products_to_csv(res.scalars().all())
    filename = f"inventory-{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _validation_message(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


@router.post("/import", response_model=ProductImportResult)
async def import_products(
    file: UploadFile = File(...),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Create products from a CSV upload.

    Valid rows are created, invalid ones are reported by line number
    (the header is line 1). Unknown category and tag names are created.
    """
    try:
        rows = read_product_rows(await file.read())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        res = await db.execute(select(CategoryModel).where(CategoryModel.user_id == user.id))
        categories: Dict[str, CategoryModel] = {c.name.lower(): c for c in res.scalars().all()}
        res = await db.execute(select(TagModel).where(TagModel.user_id == user.id))
        tags: Dict[str, TagModel] = {t.name.lower(): t for t in res.scalars().all()}

        created = 0
        errors: List[ImportRowError] = []
        for line, row in enumerate(rows, start=2):
            category_name = row.pop("category", None)
            tag_names = split_tags(row.pop("tags", ""))
            try:
                payload = ProductCreate.model_validate(row)
            except ValidationError as e:
                errors.append(ImportRowError(row=line, error=_validation_message(e)))
                continue
            if category_name and len(category_name) > 100:
                errors.append(ImportRowError(row=line, error="category: must be 100 characters or fewer"))
                continue

            category = None
            if category_name:
                category = categories.get(category_name.lower())
                if category is None:
                    category = CategoryModel(user_id=user.id, name=category_name)
                    db.add(category)
                    categories[category_name.lower()] = category
            product_tags = []
            for name in tag_names:
                tag = tags.get(name.lower())
                if tag is None:
                    tag = TagModel(user_id=user.id, name=name[:50])
                    db.add(tag)
                    tags[name.lower()] = tag
                product_tags.append(tag)

            data = payload.model_dump(exclude={"category_id", "tag_ids"})
            data["price"] = Decimal(str(data["price"]))
            product = ProductModel(user_id=user.id, category=category, tags=product_tags, **data)
            db.add(product)
            await db.flush()
            log_activity(
                db,
                user_id=user.id,
                entity_type="product",
                entity_id=product.id,
                action="create",
                changes=payload.model_dump(exclude={"category_id", "tag_ids"}),
                note=f"Imported {product.name}",
            )
            created += 1

        await db.commit()
        logger.info(f"Imported {created}/{len(rows)} products for user {user.id} ({len(errors)} errors)")
        return ProductImportResult(created=created, total=len(rows), errors=errors)

    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("import_products failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to import products: {e}")


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(
    product_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    product = await load_product(db, user, product_id)
    return ProductRead(**product.to_schema)


@router.post("/", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        category = await _resolve_category(db, user, payload.category_id)
        tags = await _resolve_tags(db, user, payload.tag_ids)

        data = payload.model_dump(exclude={"category_id", "tag_ids"})
        data["price"] = Decimal(str(data["price"]))
        product = ProductModel(user_id=user.id, category=category, tags=tags, **data)
        db.add(product)
        await db.flush()

        log_activity(
            db,
            user_id=user.id,
            entity_type="product",
            entity_id=product.id,
            action="create",
            changes=payload.model_dump(),
            note=f"Created {product.name}",
        )
        await db.commit()
        logger.info(f"Created product {product.id} for user {user.id}")

        product = await load_product(db, user, product.id)
        return ProductRead(**product.to_schema)

    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("create_product failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create product: {e}")


@router.patch("/{product_id}", response_model=ProductRead)
async def update_product(
    product_id: UUID,
    payload: ProductUpdate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        product = await load_product(db, user, product_id)
        data = payload.model_dump(exclude_unset=True)
        changes = {}

        if "category_id" in data:
            category = await _resolve_category(db, user, data.pop("category_id"))
            new_id = category.id if category else None
            if new_id != product.category_id:
                changes["category_id"] = {"from": product.category_id, "to": new_id}
            product.category = category

        if "tag_ids" in data:
            tags = await _resolve_tags(db, user, data.pop("tag_ids"))
            old = sorted(str(t.id) for t in product.tags)
            new = sorted(str(t.id) for t in tags)
            if old != new:
                changes["tag_ids"] = {"from": old, "to": new}
            product.tags = tags

        previous_qty = int(product.quantity or 0)
        for field, value in data.items():
            if field in ("name", "manufacturer", "condition", "price", "quantity") and value is None:
                continue
            if field == "price":
                value = Decimal(str(value))
            old = getattr(product, field)
            if old != value:
                changes[field] = {"from": old, "to": value}
                setattr(product, field, value)

        new_qty = int(product.quantity or 0)
        if new_qty != previous_qty:
            record_movement(
                db=db,
                user=user,
                product=product,
                movement_type="ADJUSTMENT",
                quantity=abs(new_qty - previous_qty),
                previous_qty=previous_qty,
                new_qty=new_qty,
                reason="Product updated",
            )
        if new_qty != previous_qty or "low_stock_at" in changes:
            await evaluate_stock_alerts(db, user, product)

        if changes:
            log_activity(
                db,
                user_id=user.id,
                entity_type="product",
                entity_id=product.id,
                action="update",
                changes=changes,
                note=f"Updated {product.name}",
            )
        await db.commit()
        logger.info(f"Updated product {product.id}: {sorted(changes)}")

        product = await load_product(db, user, product.id)
        return ProductRead(**product.to_schema)

    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("update_product failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to update product: {e}")


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        product = await load_product(db, user, product_id)
        log_activity(
            db,
            user_id=user.id,
            entity_type="product",
            entity_id=product.id,
            action="delete",
            changes={"name": product.name, "sku": product.sku, "quantity": product.quantity},
            note=f"Deleted {product.name}",
        )
        await db.delete(product)
        await db.commit()
        logger.info(f"Deleted product {product_id}")
        return None

    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("delete_product failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to delete product: {e}")


@router.get("/{product_id}/suppliers", response_model=List[ProductSupplierRead])
async def list_product_suppliers(
    product_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    product = await load_product(db, user, product_id)
    res = await db.execute(
        select(ProductSupplierModel)
        .join(SupplierModel, ProductSupplierModel.supplier_id == SupplierModel.id)
        .where(ProductSupplierModel.product_id == product.id, SupplierModel.user_id == user.id)
        .options(selectinload(ProductSupplierModel.supplier))
        .order_by(ProductSupplierModel.is_primary.desc(), func.lower(SupplierModel.name).asc())
    )
    return [
        ProductSupplierRead(**link.to_schema, supplier_name=link.supplier.name, product_name=product.name)
        for link in res.scalars().all()
    ]
