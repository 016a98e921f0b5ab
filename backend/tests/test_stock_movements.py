"""Stock movements, adjustments and the low/out-of-stock alert lifecycle."""

import pytest


async def move(client, product_id, type_, quantity, **extra):
    return await client.post(
        "/stock/movements",
        json={"product_id": product_id, "type": type_, "quantity": quantity, **extra},
    )


class TestMovements:
    @pytest.mark.asyncio
    async def test_in_increases_quantity_and_costs_line(self, client, make_product):
        product = await make_product(quantity=5)

        res = await move(client, product["id"], "IN", 4, unit_cost=12.5, reference="PO-7")
        assert res.status_code == 201, res.text
        body = res.json()
        assert (body["previous_qty"], body["new_qty"]) == (5, 9)
        assert body["total_cost"] == 50.0
        assert body["performed_by"] == "owner@example.com"
        assert body["reference"] == "PO-7"

        assert (await client.get(f"/products/{product['id']}")).json()["quantity"] == 9

    @pytest.mark.asyncio
    async def test_out_beyond_stock_is_rejected(self, client, make_product):
        product = await make_product(name="GPU", quantity=2)

        res = await move(client, product["id"], "OUT", 3)
        assert res.status_code == 409
        assert res.json()["detail"] == "Insufficient stock for GPU. Available: 2"

        assert (await client.get(f"/products/{product['id']}")).json()["quantity"] == 2
        assert (await client.get("/stock/movements")).json() == []

    @pytest.mark.asyncio
    async def test_return_and_adjustment_types(self, client, make_product):
        product = await make_product(quantity=5)

        assert (await move(client, product["id"], "RETURN", 1)).json()["new_qty"] == 6
        res = await move(client, product["id"], "ADJUSTMENT", 0, reason="Stocktake")
        assert res.status_code == 201
        assert res.json()["new_qty"] == 0

    @pytest.mark.asyncio
    async def test_zero_quantity_only_allowed_for_adjustments(self, client, make_product):
        product = await make_product()
        res = await move(client, product["id"], "IN", 0)
        assert res.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_supplier_reference(self, client, make_product):
        product = await make_product()
        res = await move(client, product["id"], "IN", 1, supplier_id="00000000-0000-0000-0000-000000000000")
        assert res.status_code == 404

    @pytest.mark.asyncio
    async def test_batch_must_belong_to_product(self, client, make_product):
        first = await make_product(name="First")
        second = await make_product(name="Second")
        batch = (await client.post("/batches/", json={"product_id": first["id"], "batch_number": "B-1", "quantity": 1})).json()

        res = await move(client, second["id"], "IN", 1, batch_id=batch["id"])
        assert res.status_code == 404
        res = await move(client, first["id"], "IN", 1, batch_id=batch["id"])
        assert res.status_code == 201

    @pytest.mark.asyncio
    async def test_movement_logs_stock_adjustment_activity(self, client, make_product):
        product = await make_product(quantity=5)
        await move(client, product["id"], "OUT", 2)
        entries = (await client.get("/activity/", params={"entity_type": "product"})).json()
        assert entries[0]["action"] == "stock_adjustment"
        assert entries[0]["changes"]["new_qty"] == 3


class TestAdjustAndHistory:
    @pytest.mark.asyncio
    async def test_adjust_records_size_of_change(self, client, make_product):
        product = await make_product(quantity=10)

        res = await client.post(
            "/stock/adjust",
            json={"product_id": product["id"], "new_quantity": 4, "reason": "Damaged in storage"},
        )
        assert res.status_code == 201, res.text
        body = res.json()
        assert body["type"] == "ADJUSTMENT"
        assert (body["quantity"], body["previous_qty"], body["new_qty"]) == (6, 10, 4)
        assert body["reason"] == "Damaged in storage"

    @pytest.mark.asyncio
    async def test_adjust_requires_reason(self, client, make_product):
        product = await make_product()
        res = await client.post("/stock/adjust", json={"product_id": product["id"], "new_quantity": 1, "reason": " "})
        assert res.status_code == 422
        assert "reason" in res.json()["errors"]

    @pytest.mark.asyncio
    async def test_history_and_filters(self, client, make_product):
        product = await make_product(quantity=10)
        other = await make_product(name="Other", quantity=10)
        await move(client, product["id"], "IN", 5)
        await move(client, product["id"], "OUT", 3)
        await move(client, other["id"], "OUT", 1)

        history = (await client.get(f"/stock/products/{product['id']}/history")).json()
        assert sorted(m["type"] for m in history) == ["IN", "OUT"]

        outs = (await client.get("/stock/movements", params={"type": "OUT"})).json()
        assert len(outs) == 2

        totals = (await client.get("/stock/totals")).json()
        assert totals == {"IN": 5, "OUT": 4, "ADJUSTMENT": 0, "RETURN": 0}

    @pytest.mark.asyncio
    async def test_invalid_type_filter(self, client):
        res = await client.get("/stock/movements", params={"type": "TRANSFER"})
        assert res.status_code == 422

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_move_stock(self, client, make_product, other_user, login_as):
        product = await make_product()
        login_as(other_user)
        assert (await move(client, product["id"], "IN", 1)).status_code == 404
        assert (await client.get(f"/stock/products/{product['id']}/history")).status_code == 404
        assert (await client.get("/stock/movements")).json() == []


class TestQuantityAlerts:
    @pytest.mark.asyncio
    async def test_low_then_out_then_recovered(self, client, make_product):
        product = await make_product(quantity=10, low_stock_at=3)

        await move(client, product["id"], "OUT", 8)
        alerts = (await client.get("/alerts/")).json()
        assert [a["type"] for a in alerts] == ["LOW_STOCK"]
        assert (alerts[0]["threshold"], alerts[0]["current_value"]) == (3, 2)

        # Another low reading keeps the open alert.
        await move(client, product["id"], "OUT", 1)
        assert len((await client.get("/alerts/")).json()) == 1

        await move(client, product["id"], "OUT", 1)
        alerts = {a["type"]: a for a in (await client.get("/alerts/")).json()}
        assert alerts["OUT_OF_STOCK"]["resolved_at"] is None
        assert alerts["LOW_STOCK"]["resolved_at"] is not None

        await move(client, product["id"], "IN", 20)
        alerts = (await client.get("/alerts/")).json()
        assert all(a["resolved_at"] is not None for a in alerts)

    @pytest.mark.asyncio
    async def test_acknowledged_alert_is_not_raised_again(self, client, make_product):
        product = await make_product(quantity=10, low_stock_at=3)
        await move(client, product["id"], "OUT", 8)
        alert = (await client.get("/alerts/")).json()[0]
        await client.post(f"/alerts/{alert['id']}/acknowledge")

        await move(client, product["id"], "OUT", 1)
        assert (await client.get("/alerts/")).json() == []
        assert len((await client.get("/alerts/", params={"include_acknowledged": "true"})).json()) == 1
