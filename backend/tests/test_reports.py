"""Inventory reports, dashboard and valuation snapshots."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio


@pytest_asyncio.fixture
async def stocked(make_product, make_category):
    memory = await make_category("Memory")
    await make_category("Empty")
    return [
        await make_product(name="DDR5 kit", manufacturer="Kingston", price=100, quantity=3, low_stock_at=5, category_id=memory["id"]),
        await make_product(name="RTX 4070", manufacturer="NVIDIA", price=600, quantity=2, low_stock_at=1),
        await make_product(name="Old fan", manufacturer="Noctua", price=10, quantity=0, low_stock_at=None),
    ]


class TestInventoryReports:
    @pytest.mark.asyncio
    async def test_inventory_report(self, client, stocked):
        body = (await client.get("/reports/inventory")).json()
        assert body["total_products"] == 3
        assert body["total_quantity"] == 5
        assert body["total_value"] == 1500.0
        assert body["low_stock_count"] == 1
        assert body["out_of_stock_count"] == 1
        assert body["value_by_category"] == {"Uncategorized": 1200.0, "Memory": 300.0}

    @pytest.mark.asyncio
    async def test_metrics_average(self, client, stocked):
        body = (await client.get("/reports/metrics")).json()
        assert body["average_value"] == 500.0

    @pytest.mark.asyncio
    async def test_dashboard(self, client, stocked):
        body = (await client.get("/reports/dashboard", params={"days": 7})).json()
        assert body["total_value"] == 1500.0
        assert body["recent_products"] == 3
        assert body["average_price"] == pytest.approx(236.67)
        assert body["total_units"] == 5
        assert body["category_count"] == 2
        assert [e["label"] for e in body["category_breakdown"]] == ["Uncategorized", "Memory"]
        assert {e["label"] for e in body["manufacturer_breakdown"]} == {"Kingston", "NVIDIA", "Noctua"}
        assert len(body["chart_data"]) == 7
        assert body["chart_data"][-1]["value"] == 1500.0

    @pytest.mark.asyncio
    async def test_empty_dashboard(self, client):
        body = (await client.get("/reports/dashboard")).json()
        assert body["total_products"] == 0
        assert body["average_price"] == 0.0
        assert len(body["chart_data"]) == 90

    @pytest.mark.asyncio
    async def test_top_products_by_value(self, client, stocked):
        top = (await client.get("/reports/top-products", params={"limit": 2})).json()
        assert [(p["name"], p["value"]) for p in top] == [("RTX 4070", 1200.0), ("DDR5 kit", 300.0)]

    @pytest.mark.asyncio
    async def test_low_and_out_of_stock_lists(self, client, stocked, make_product):
        await make_product(name="Empty but tracked", quantity=0, low_stock_at=2)

        low = [p["name"] for p in (await client.get("/reports/low-stock")).json()]
        assert low == ["Empty but tracked", "DDR5 kit"]
        out = [p["name"] for p in (await client.get("/reports/out-of-stock")).json()]
        assert out == ["Empty but tracked", "Old fan"]

    @pytest.mark.asyncio
    async def test_reports_are_tenant_scoped(self, client, stocked, other_user, login_as):
        login_as(other_user)
        body = (await client.get("/reports/inventory")).json()
        assert body["total_products"] == 0
        assert body["value_by_category"] == {}


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_latest_without_snapshots_is_404(self, client):
        assert (await client.get("/reports/snapshots/latest")).status_code == 404

    @pytest.mark.asyncio
    async def test_snapshot_captures_current_totals(self, client, stocked, make_product):
        first = (await client.post("/reports/snapshots")).json()
        assert first["total_value"] == 1500.0

        await make_product(name="Extra", price=50, quantity=2)
        second = (await client.post("/reports/snapshots")).json()
        assert second["total_value"] == 1600.0

        latest = (await client.get("/reports/snapshots/latest")).json()
        assert latest["id"] == second["id"]

        listed = (await client.get("/reports/snapshots")).json()
        assert [s["id"] for s in listed] == [second["id"], first["id"]]

        trend = (await client.get("/reports/snapshots/trend")).json()
        assert [s["total_value"] for s in trend] == [1500.0, 1600.0]

    @pytest.mark.asyncio
    async def test_trend_window(self, client):
        await client.post("/reports/snapshots")
        future = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
        assert (await client.get("/reports/snapshots/trend", params={"start": future})).json() == []
        assert len((await client.get("/reports/snapshots/trend", params={"end": future})).json()) == 1


class TestMovementSummary:
    @pytest.mark.asyncio
    async def test_summary_counts_recent_movements(self, client, make_product):
        product = await make_product(quantity=10)
        for type_, qty in (("IN", 5), ("OUT", 3), ("RETURN", 1)):
            await client.post("/stock/movements", json={"product_id": product["id"], "type": type_, "quantity": qty})
        await client.post("/stock/adjust", json={"product_id": product["id"], "new_quantity": 10, "reason": "Count"})

        body = (await client.get("/reports/movement-summary", params={"days": 7})).json()
        assert body == {
            "days": 7,
            "total_in": 5,
            "total_out": 3,
            "total_adjustments": 3,
            "total_returns": 1,
            "net_change": 6,
        }
