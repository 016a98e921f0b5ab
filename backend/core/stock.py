"""
Stock status, valuation and bucketing helpers.

Everything here is pure: callers fetch a tenant's rows and pass them in.
Product-like arguments only need `quantity`, `price`, `low_stock_at` and,
where noted, `created_at`, `manufacturer` or `category`.
"""

from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Tuple

CENT = Decimal("0.01")

MOVEMENT_TYPES = ("IN", "OUT", "ADJUSTMENT", "RETURN")

EXPIRY_WINDOW_DAYS = 30
UNCATEGORIZED = "Uncategorized"


class InsufficientStock(Exception):
    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock. Available: {available}")


def _money(x) -> Decimal:
    if x is None:
        return Decimal("0")
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def _cents(x: Decimal) -> Decimal:
    return x.quantize(CENT, rounding=ROUND_HALF_UP)


def is_low_stock(quantity: int, low_stock_at: Optional[int]) -> bool:
    return low_stock_at is not None and quantity <= low_stock_at


def stock_status(quantity: int, low_stock_at: Optional[int]) -> str:
    if quantity == 0:
        return "out-of-stock"
    if is_low_stock(quantity, low_stock_at):
        return "low-stock"
    return "in-stock"


def line_value(product) -> Decimal:
    return _money(product.price) * int(product.quantity or 0)


@dataclass
class InventoryTotals:
    total_products: int = 0
    total_quantity: int = 0
    total_value: float = 0.0
    low_stock_count: int = 0
    out_of_stock_count: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def inventory_totals(products: Iterable) -> InventoryTotals:
    totals = InventoryTotals()
    value = Decimal("0")
    for p in products:
        qty = int(p.quantity or 0)
        totals.total_products += 1
        totals.total_quantity += qty
        value += line_value(p)
        if is_low_stock(qty, p.low_stock_at):
            totals.low_stock_count += 1
        if qty == 0:
            totals.out_of_stock_count += 1
    totals.total_value = float(_cents(value))
    return totals


def average_value(totals: InventoryTotals) -> float:
    if totals.total_products <= 0:
        return 0.0
    return totals.total_value / totals.total_products


def _category_label(product) -> str:
    category = getattr(product, "category", None)
    name = getattr(category, "name", None) if category is not None else None
    return name or UNCATEGORIZED


def _manufacturer_label(product) -> str:
    return (getattr(product, "manufacturer", None) or "").strip() or "Unknown"


def breakdown(products: Iterable, by: str = "category") -> Dict[str, dict]:
    """Group products into {label: {"count", "value"}}, largest value first."""
    label_of = _category_label if by == "category" else _manufacturer_label
    groups: Dict[str, Dict[str, Decimal]] = {}
    for p in products:
        g = groups.setdefault(label_of(p), {"count": 0, "value": Decimal("0")})
        g["count"] += 1
        g["value"] += line_value(p)
    ordered = sorted(groups.items(), key=lambda kv: (-kv[1]["value"], kv[0]))
    return OrderedDict(
        (label, {"count": g["count"], "value": float(_cents(g["value"]))})
        for label, g in ordered
    )


def value_by_category(products: Iterable) -> Dict[str, float]:
    return {label: g["value"] for label, g in breakdown(products, by="category").items()}


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def daily_value_series(products: Iterable, days: int = 90, today: Optional[date] = None) -> List[dict]:
    """
    Zero-filled daily series over the last `days` calendar days (inclusive of today).
    Each product adds price*quantity to the bucket of the day it was created.
    """
    if days < 1:
        return []
    today = today or datetime.now(timezone.utc).date()
    start = today - timedelta(days=days - 1)
    buckets: "OrderedDict[date, Decimal]" = OrderedDict(
        (start + timedelta(days=i), Decimal("0")) for i in range(days)
    )
    for p in products:
        created = getattr(p, "created_at", None)
        if created is None:
            continue
        d = _as_date(created)
        if d in buckets:
            buckets[d] += line_value(p)
    return [{"date": d.isoformat(), "value": float(_cents(v))} for d, v in buckets.items()]


def daily_amount_series(sales: Iterable) -> List[dict]:
    """Sale totals per calendar date, ascending, only dates with sales."""
    buckets: Dict[date, Decimal] = {}
    for s in sales:
        d = _as_date(s.created_at)
        buckets[d] = buckets.get(d, Decimal("0")) + _money(s.total_amount)
    return [
        {"date": d.isoformat(), "amount": float(_cents(v))}
        for d, v in sorted(buckets.items())
    ]


def apply_movement(previous_qty: int, movement_type: str, quantity: int) -> int:
    """Quantity after a movement. ADJUSTMENT sets the quantity outright."""
    if movement_type in ("IN", "RETURN"):
        return previous_qty + quantity
    if movement_type == "OUT":
        new_qty = previous_qty - quantity
        if new_qty < 0:
            raise InsufficientStock(previous_qty, quantity)
        return new_qty
    if movement_type == "ADJUSTMENT":
        return quantity
    raise ValueError(f"Unknown movement type: {movement_type}")


def alert_for_quantity(quantity: int, low_stock_at: Optional[int]) -> Optional[Tuple[str, str]]:
    if quantity == 0:
        return "OUT_OF_STOCK", "Product is out of stock"
    if is_low_stock(quantity, low_stock_at):
        return "LOW_STOCK", f"Product stock is low ({quantity} remaining)"
    return None


def days_until(expires_at: datetime, now: datetime) -> int:
    # Floor of the elapsed fraction, like a calendar countdown.
    return int((expires_at - now).total_seconds() // 86400)


def expiry_alert(batch_number: str, expires_at: Optional[datetime], now: datetime) -> Optional[Tuple[str, str, int]]:
    if expires_at is None:
        return None
    days = days_until(expires_at, now)
    if 0 < days <= EXPIRY_WINDOW_DAYS:
        return "EXPIRING_SOON", f"Batch {batch_number} expires in {days} days", days
    if days <= 0:
        return "EXPIRED", f"Batch {batch_number} has expired", 0
    return None


@dataclass
class SaleLine:
    product_id: object
    quantity: int
    price: Decimal
    discount: Decimal
    subtotal: Decimal
    total_price: Decimal


@dataclass
class SaleTotals:
    lines: List[SaleLine]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total_amount: Decimal


def sale_totals(items: Iterable, overall_discount=0, tax_rate=0) -> SaleTotals:
    """
    Items need `product_id`, `quantity`, `price` and optional `discount`.
    Tax applies to the subtotal after the overall discount.
    """
    lines: List[SaleLine] = []
    for it in items:
        price = _money(it.price)
        item_discount = _money(getattr(it, "discount", None))
        line_subtotal = price * int(it.quantity)
        lines.append(
            SaleLine(
                product_id=it.product_id,
                quantity=int(it.quantity),
                price=_cents(price),
                discount=_cents(item_discount),
                subtotal=_cents(line_subtotal),
                total_price=_cents(line_subtotal - item_discount),
            )
        )
    subtotal = sum((ln.total_price for ln in lines), Decimal("0"))
    discount = _money(overall_discount)
    after_discount = subtotal - discount
    tax = after_discount * _money(tax_rate) / Decimal("100")
    return SaleTotals(
        lines=lines,
        subtotal=_cents(subtotal),
        discount=_cents(discount),
        tax=_cents(tax),
        total_amount=_cents(after_discount + tax),
    )


def invoice_prefix(today: date) -> str:
    return f"INV-{today.strftime('%Y%m%d')}"


def next_invoice_number(today: date, latest: Optional[str]) -> str:
    """`latest` is the highest invoice number already issued today, if any."""
    prefix = invoice_prefix(today)
    counter = 1
    if latest and latest.startswith(prefix):
        try:
            counter = int(latest.rsplit("-", 1)[-1]) + 1
        except ValueError:
            counter = 1
    return f"{prefix}-{counter:04d}"


def movement_summary(totals_by_type: Dict[str, int]) -> dict:
    t_in = int(totals_by_type.get("IN", 0))
    t_out = int(totals_by_type.get("OUT", 0))
    t_adj = int(totals_by_type.get("ADJUSTMENT", 0))
    t_ret = int(totals_by_type.get("RETURN", 0))
    return {
        "total_in": t_in,
        "total_out": t_out,
        "total_adjustments": t_adj,
        "total_returns": t_ret,
        "net_change": t_in + t_ret - t_out + t_adj,
    }
