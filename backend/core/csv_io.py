"""
CSV export and import of a tenant's product list.

Export writes one row per product with the columns in `PRODUCT_COLUMNS`.
Import accepts the same columns; header matching ignores case, spaces and
dashes, so a sheet saved with "Low Stock At" still maps to `low_stock_at`.
"""

import io
from typing import Dict, Iterable, List

import pandas as pd

from core.logging import get_logger

logger = get_logger(__name__)

PRODUCT_COLUMNS = [
    "name",
    "sku",
    "category",
    "manufacturer",
    "model",
    "condition",
    "price",
    "quantity",
    "low_stock_at",
    "location",
    "specs",
    "compatibility",
    "supplier",
    "warranty_months",
    "notes",
    "tags",
    "created_at",
    "updated_at",
]

_HEADER_ALIASES = {
    "category_name": "category",
    "low_stock": "low_stock_at",
    "warranty": "warranty_months",
    "qty": "quantity",
}

TAG_SEPARATOR = ";"


def _normalize_header(header: str) -> str:
    key = str(header).strip().lower().replace("-", "_").replace(" ", "_")
    return _HEADER_ALIASES.get(key, key)


def product_row(product) -> Dict[str, object]:
    """Flatten a product (category and tags loaded) into an export row."""
    return {
        "name": product.name,
        "sku": product.sku or "",
        "category": product.category.name if product.category else "",
        "manufacturer": product.manufacturer,
        "model": product.model or "",
        "condition": product.condition,
        "price": f"{float(product.price or 0):.2f}",
        "quantity": int(product.quantity or 0),
        "low_stock_at": "" if product.low_stock_at is None else product.low_stock_at,
        "location": product.location or "",
        "specs": product.specs or "",
        "compatibility": product.compatibility or "",
        "supplier": product.supplier or "",
        "warranty_months": "" if product.warranty_months is None else product.warranty_months,
        "notes": product.notes or "",
        "tags": TAG_SEPARATOR.join(t.name for t in (product.tags or [])),
        "created_at": product.created_at.isoformat() if product.created_at else "",
        "updated_at": product.updated_at.isoformat() if product.updated_at else "",
    }


def products_to_csv(products: Iterable) -> str:
    rows = [product_row(p) for p in products]
    df = pd.DataFrame(rows, columns=PRODUCT_COLUMNS)
    buffer = io.StringIO()
    df.to_csv(buffer, index=False)
    logger.info(f"Exported {len(rows)} products as CSV")
    return buffer.getvalue()


def read_product_rows(data: bytes) -> List[Dict[str, str]]:
    """
    Parse an uploaded CSV into one dict per data row.

    Values stay strings; blank cells are dropped so schema defaults apply.
    Raises ValueError when the file is empty or not parseable.
    """
    if not data or not data.strip():
        raise ValueError("CSV file is empty")
    try:
        df = pd.read_csv(io.BytesIO(data), dtype=str, keep_default_na=False, encoding="utf-8-sig")
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
        raise ValueError(f"Could not parse CSV: {e}") from e

    df.columns = [_normalize_header(c) for c in df.columns]
    rows = []
    for record in df.to_dict(orient="records"):
        rows.append({k: v.strip() for k, v in record.items() if isinstance(v, str) and v.strip()})
    return rows


def split_tags(value: str) -> List[str]:
    seen = []
    for part in (value or "").split(TAG_SEPARATOR):
        name = part.strip()
        if name and name.lower() not in (s.lower() for s in seen):
            seen.append(name)
    return seen
