"""
Stock tracking.

Models:
- Batch (received lot of a product, optionally expiring)
- StockMovement (append-only record of every quantity change)
- StockAlert (low/out-of-stock and expiry notices)
- InventoryValue (point-in-time valuation snapshot)
"""
