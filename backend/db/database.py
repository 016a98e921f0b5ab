from .base import Base, async_session_maker, engine, get_async_session, utcnow  # noqa: F401

# Model registry: importing here registers every table on Base.metadata and
# lets routers pull models from one place.
from .users import User  # noqa: F401
from .category import Category  # noqa: F401
from .tag import Tag, ProductTag  # noqa: F401
from .product import Product  # noqa: F401
from .supplier import Supplier, ProductSupplier  # noqa: F401
from .inventory.batch import Batch  # noqa: F401
from .inventory.movement import StockMovement  # noqa: F401
from .inventory.alert import StockAlert  # noqa: F401
from .inventory.value import InventoryValue  # noqa: F401
from .sale import Sale, SaleItem  # noqa: F401
from .activity import ActivityLog  # noqa: F401
from .image import Image  # noqa: F401
from .saved_filter import SavedFilter  # noqa: F401


async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
