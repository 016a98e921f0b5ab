import asyncio
import sys
from pathlib import Path
from decimal import Decimal

"""
Seed a demo tenant (categories, suppliers, hardware parts) into the DB and
record an initial inventory valuation snapshot.

This script can be run from either:
- backend/: `python scripts/seed_demo_data.py`
- repo root: `python backend/scripts/seed_demo_data.py`
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select

from core.logging import get_logger
from core.stock import inventory_totals
from db.database import (
    async_session_maker,
    create_db_and_tables,
    Category,
    InventoryValue,
    Product,
    ProductSupplier,
    Supplier,
    User,
)

from fastapi_users.password import PasswordHelper


password_helper = PasswordHelper()
logger = get_logger(__name__)

DEMO_EMAIL = "demo@stockroom.local"
DEMO_PASSWORD = "demo-password"

CATEGORIES = ["Processors", "Graphics Cards", "Memory", "Storage", "Motherboards", "Power Supplies"]

SUPPLIERS = [
    {"name": "Northwind Components", "contact_person": "Dana Levi", "email": "orders@northwind.example", "phone": "+1-555-0100"},
    {"name": "Silicon Depot", "contact_person": "Omar Haddad", "email": "sales@silicondepot.example", "phone": "+1-555-0142"},
]

# (category, name, manufacturer, model, sku, condition, price, quantity, low_stock_at, supplier)
PRODUCTS = [
    ("Processors", "Ryzen 7 7800X3D", "AMD", "100-100000910WOF", "CPU-AMD-7800X3D", "new", "449.00", 8, 3, "Northwind Components"),
    ("Processors", "Core i5-13600K", "Intel", "BX8071513600K", "CPU-INT-13600K", "new", "319.99", 2, 3, "Silicon Depot"),
    ("Graphics Cards", "GeForce RTX 4070", "NVIDIA", "RTX4070-FE", "GPU-NV-4070", "new", "599.00", 4, 2, "Northwind Components"),
    ("Graphics Cards", "Radeon RX 6700 XT", "AMD", "RX6700XT", "GPU-AMD-6700XT", "refurbished", "289.50", 1, 2, "Silicon Depot"),
    ("Memory", "Vengeance DDR5 32GB (2x16GB) 6000", "Corsair", "CMK32GX5M2B6000C36", "RAM-COR-32D5", "new", "109.99", 15, 5, "Northwind Components"),
    ("Memory", "Ripjaws V DDR4 16GB (2x8GB) 3200", "G.Skill", "F4-3200C16D-16GVKB", "RAM-GSK-16D4", "used", "32.00", 0, 4, "Silicon Depot"),
    ("Storage", "990 PRO 2TB NVMe", "Samsung", "MZ-V9P2T0BW", "SSD-SAM-990P2", "new", "169.99", 12, 4, "Northwind Components"),
    ("Storage", "WD Blue 4TB HDD", "Western Digital", "WD40EZAZ", "HDD-WD-4TB", "for-parts", "15.00", 3, None, None),
    ("Motherboards", "B650 Tomahawk WiFi", "MSI", "MAG B650 TOMAHAWK", "MB-MSI-B650T", "new", "219.99", 5, 2, "Silicon Depot"),
    ("Power Supplies", "RM850x 850W", "Corsair", "CP-9020200-NA", "PSU-COR-RM850X", "new", "139.99", 7, 2, "Northwind Components"),
]


async def get_or_create_user(session, email: str, password: str) -> User:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(
        email=email,
        hashed_password=password_helper.hash(password),
        name="Demo Shop",
        is_active=True,
        is_superuser=False,
        is_verified=True,
    )
    session.add(user)
    await session.flush()
    return user


async def get_or_create_category(session, user_id, name: str) -> Category:
    result = await session.execute(
        select(Category).where(Category.user_id == user_id, func.lower(Category.name) == name.lower())
    )
    category = result.scalar_one_or_none()
    if category:
        return category
    category = Category(user_id=user_id, name=name)
    session.add(category)
    await session.flush()
    return category


async def get_or_create_supplier(session, user_id, data: dict) -> Supplier:
    result = await session.execute(
        select(Supplier).where(Supplier.user_id == user_id, func.lower(Supplier.name) == data["name"].lower())
    )
    supplier = result.scalar_one_or_none()
    if supplier:
        return supplier
    supplier = Supplier(user_id=user_id, **data)
    session.add(supplier)
    await session.flush()
    return supplier


async def upsert_product(session, user_id, category: Category, row: tuple, supplier: Supplier = None) -> Product:
    _, name, manufacturer, model, sku, condition, price, quantity, low_stock_at, _ = row
    result = await session.execute(select(Product).where(Product.user_id == user_id, Product.sku == sku))
    product = result.scalar_one_or_none()
    if product is None:
        product = Product(user_id=user_id, sku=sku)
        session.add(product)

    product.category_id = category.id
    product.name = name
    product.manufacturer = manufacturer
    product.model = model
    product.condition = condition
    product.price = Decimal(price)
    product.quantity = quantity
    product.low_stock_at = low_stock_at
    product.supplier = supplier.name if supplier else None
    await session.flush()

    if supplier is not None:
        result = await session.execute(
            select(ProductSupplier).where(
                ProductSupplier.product_id == product.id,
                ProductSupplier.supplier_id == supplier.id,
            )
        )
        if result.scalar_one_or_none() is None:
            session.add(
                ProductSupplier(
                    product_id=product.id,
                    supplier_id=supplier.id,
                    cost_price=(Decimal(price) * Decimal("0.8")).quantize(Decimal("0.01")),
                    lead_time_days=5,
                    is_primary=True,
                )
            )
    return product


async def seed():
    await create_db_and_tables()
    async with async_session_maker() as session:
        async with session.begin():
            user = await get_or_create_user(session, DEMO_EMAIL, DEMO_PASSWORD)

            categories = {name: await get_or_create_category(session, user.id, name) for name in CATEGORIES}
            suppliers = {s["name"]: await get_or_create_supplier(session, user.id, s) for s in SUPPLIERS}

            products = []
            for row in PRODUCTS:
                supplier = suppliers.get(row[-1]) if row[-1] else None
                products.append(await upsert_product(session, user.id, categories[row[0]], row, supplier))

            totals = inventory_totals(products)
            session.add(InventoryValue(user_id=user.id, **totals.as_dict()))

    logger.info(
        f"Seeded {len(PRODUCTS)} products for {DEMO_EMAIL}: "
        f"value={totals.total_value}, low_stock={totals.low_stock_count}, out_of_stock={totals.out_of_stock_count}"
    )


if __name__ == "__main__":
    asyncio.run(seed())
