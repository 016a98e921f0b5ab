"""Product catalog API: CRUD, listing filters, CSV export/import and tenant isolation."""

import io

import pandas as pd
import pytest


class TestCreateAndRead:
    @pytest.mark.asyncio
    async def test_create_product_returns_derived_fields(self, client, make_category):
        category = await make_category("Processors")
        tag = (await client.post("/tags/", json={"name": "gaming"})).json()

        res = await client.post(
            "/products/",
            json={
                "name": "  Ryzen 7 7800X3D ",
                "manufacturer": "AMD",
                "price": 449,
                "quantity": 2,
                "low_stock_at": 3,
                "category_id": category["id"],
                "tag_ids": [tag["id"]],
                "sku": "",
            },
        )
        assert res.status_code == 201, res.text
        body = res.json()
        assert body["name"] == "Ryzen 7 7800X3D"
        assert body["condition"] == "new"
        assert body["sku"] is None
        assert body["category_name"] == "Processors"
        assert body["stock_status"] == "low-stock"
        assert body["tags"] == [{"id": tag["id"], "name": "gaming"}]

        fetched = await client.get(f"/products/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["price"] == 449.0

    @pytest.mark.asyncio
    async def test_validation_errors_are_keyed_by_field(self, client):
        res = await client.post("/products/", json={"manufacturer": "AMD", "price": -1, "quantity": 1})
        assert res.status_code == 422
        body = res.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert "name" in body["errors"]
        assert "price" in body["errors"]

    @pytest.mark.asyncio
    async def test_invalid_image_url_rejected(self, client):
        res = await client.post(
            "/products/",
            json={"name": "X", "manufacturer": "Y", "price": 1, "quantity": 1, "image_url": "ftp://nope"},
        )
        assert res.status_code == 422
        assert "image_url" in res.json()["errors"]

    @pytest.mark.asyncio
    async def test_unknown_category_is_404(self, client):
        res = await client.post(
            "/products/",
            json={
                "name": "X",
                "manufacturer": "Y",
                "price": 1,
                "quantity": 1,
                "category_id": "00000000-0000-0000-0000-000000000000",
            },
        )
        assert res.status_code == 404

    @pytest.mark.asyncio
    async def test_create_logs_activity(self, client, make_product):
        product = await make_product()
        res = await client.get("/activity/", params={"entity_type": "product"})
        entries = res.json()
        assert [e["action"] for e in entries] == ["create"]
        assert entries[0]["entity_id"] == product["id"]


class TestListing:
    @pytest.mark.asyncio
    async def test_pagination_and_clamping(self, client, make_product):
        for i in range(3):
            await make_product(name=f"Part {i}")

        res = await client.get("/products/", params={"page_size": 2, "sort": "name-asc"})
        body = res.json()
        assert body["total"] == 3
        assert body["total_pages"] == 2
        assert [p["name"] for p in body["items"]] == ["Part 0", "Part 1"]

        res = await client.get("/products/", params={"page": 1, "page_size": 2, "sort": "name-asc"})
        assert [p["name"] for p in res.json()["items"]] == ["Part 2"]

        res = await client.get("/products/", params={"page": -4, "page_size": 500})
        body = res.json()
        assert body["page"] == 0
        assert body["page_size"] == 100

        res = await client.get("/products/", params={"page_size": 0})
        assert res.json()["page_size"] == 1

    @pytest.mark.asyncio
    async def test_default_page_size_and_sort_echo(self, client):
        body = (await client.get("/products/")).json()
        assert body["page_size"] == 12
        assert body["total_pages"] == 0
        assert body["filters"]["sort"] == "created_at-desc"

    @pytest.mark.asyncio
    async def test_search_matches_sku_and_category_name(self, client, make_product, make_category):
        gpus = await make_category("Graphics Cards")
        await make_product(name="RTX 4070", manufacturer="NVIDIA", category_id=gpus["id"])
        await make_product(name="Plain part", sku="ZX-99")
        await make_product(name="Other")

        names = {p["name"] for p in (await client.get("/products/", params={"search": "graphics"})).json()["items"]}
        assert names == {"RTX 4070"}
        names = {p["name"] for p in (await client.get("/products/", params={"search": "zx-9"})).json()["items"]}
        assert names == {"Plain part"}

    @pytest.mark.asyncio
    async def test_search_treats_wildcards_literally(self, client, make_product):
        await make_product(name="100% Copper Cable")
        await make_product(name="1000W PSU")
        await make_product(name="USB_C Hub")
        await make_product(name="USB-C Dock")

        names = [p["name"] for p in (await client.get("/products/", params={"search": "100%"})).json()["items"]]
        assert names == ["100% Copper Cable"]
        names = [p["name"] for p in (await client.get("/products/", params={"search": "usb_c"})).json()["items"]]
        assert names == ["USB_C Hub"]

    @pytest.mark.asyncio
    async def test_category_and_low_stock_filters(self, client, make_product, make_category):
        memory = await make_category("Memory")
        await make_product(name="DDR5 kit", category_id=memory["id"], quantity=1, low_stock_at=2)
        await make_product(name="Loose part", quantity=50, low_stock_at=2)

        res = await client.get("/products/", params={"category": "__uncategorized"})
        assert [p["name"] for p in res.json()["items"]] == ["Loose part"]

        res = await client.get("/products/", params={"category": memory["id"]})
        assert [p["name"] for p in res.json()["items"]] == ["DDR5 kit"]

        res = await client.get("/products/", params={"low_stock": "true"})
        assert [p["name"] for p in res.json()["items"]] == ["DDR5 kit"]

    @pytest.mark.asyncio
    async def test_sort_by_price(self, client, make_product):
        await make_product(name="Cheap", price=5)
        await make_product(name="Pricey", price=500)
        await make_product(name="Middle", price=50)

        res = await client.get("/products/", params={"sort": "price-desc"})
        assert [p["name"] for p in res.json()["items"]] == ["Pricey", "Middle", "Cheap"]

    @pytest.mark.asyncio
    async def test_manufacturers_are_distinct_and_sorted(self, client, make_product):
        await make_product(manufacturer="Intel")
        await make_product(manufacturer="AMD")
        await make_product(manufacturer="Intel")

        res = await client.get("/products/manufacturers")
        assert res.json() == ["AMD", "Intel"]


class TestUpdateAndDelete:
    @pytest.mark.asyncio
    async def test_quantity_change_records_adjustment_and_alert(self, client, make_product):
        product = await make_product(quantity=10, low_stock_at=3)

        res = await client.patch(f"/products/{product['id']}", json={"quantity": 2})
        assert res.status_code == 200, res.text
        assert res.json()["stock_status"] == "low-stock"

        movements = (await client.get("/stock/movements", params={"product_id": product["id"]})).json()
        assert len(movements) == 1
        assert movements[0]["type"] == "ADJUSTMENT"
        assert (movements[0]["previous_qty"], movements[0]["new_qty"], movements[0]["quantity"]) == (10, 2, 8)

        alerts = (await client.get("/alerts/")).json()
        assert [(a["type"], a["message"]) for a in alerts] == [("LOW_STOCK", "Product stock is low (2 remaining)")]

    @pytest.mark.asyncio
    async def test_update_without_quantity_change_records_no_movement(self, client, make_product):
        product = await make_product()
        res = await client.patch(f"/products/{product['id']}", json={"notes": "Boxed", "condition": "used"})
        assert res.json()["notes"] == "Boxed"
        assert res.json()["condition"] == "used"
        assert (await client.get("/stock/movements")).json() == []

        entries = (await client.get("/activity/")).json()
        assert entries[0]["action"] == "update"
        assert entries[0]["changes"]["condition"] == {"from": "new", "to": "used"}

    @pytest.mark.asyncio
    async def test_clear_category_and_tags(self, client, make_product, make_category):
        category = await make_category("Storage")
        tag = (await client.post("/tags/", json={"name": "nvme"})).json()
        product = await make_product(category_id=category["id"], tag_ids=[tag["id"]])

        res = await client.patch(f"/products/{product['id']}", json={"category_id": None, "tag_ids": []})
        body = res.json()
        assert body["category_id"] is None
        assert body["tags"] == []

    @pytest.mark.asyncio
    async def test_delete_product(self, client, make_product):
        product = await make_product()
        res = await client.delete(f"/products/{product['id']}")
        assert res.status_code == 204
        assert (await client.get(f"/products/{product['id']}")).status_code == 404
        actions = [e["action"] for e in (await client.get("/activity/")).json()]
        assert actions == ["delete", "create"]


class TestTenantIsolation:
    @pytest.mark.asyncio
    async def test_other_tenant_cannot_see_or_change_products(self, client, make_product, other_user, login_as):
        product = await make_product()

        login_as(other_user)
        assert (await client.get(f"/products/{product['id']}")).status_code == 404
        assert (await client.patch(f"/products/{product['id']}", json={"quantity": 0})).status_code == 404
        assert (await client.delete(f"/products/{product['id']}")).status_code == 404
        assert (await client.get("/products/")).json()["total"] == 0

    @pytest.mark.asyncio
    async def test_anonymous_requests_are_rejected(self, anon_client):
        res = await anon_client.get("/products/")
        assert res.status_code == 401


class TestCsv:
    @pytest.mark.asyncio
    async def test_export_filtered_list(self, client, make_product, make_category):
        category = await make_category("Memory")
        await make_product(name="DDR5 kit", category_id=category["id"], sku="RAM-1")
        await make_product(name="Other", manufacturer="Intel")

        res = await client.get("/products/export", params={"manufacturer": "amd"})
        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/csv")
        assert "attachment;" in res.headers["content-disposition"]

        df = pd.read_csv(io.StringIO(res.text), dtype=str, keep_default_na=False)
        assert list(df["name"]) == ["DDR5 kit"]
        assert list(df["category"]) == ["Memory"]
        assert list(df["sku"]) == ["RAM-1"]

    @pytest.mark.asyncio
    async def test_import_reports_row_errors(self, client):
        csv_text = (
            "Name,Manufacturer,Price,Quantity,Category,Tags\n"
            "RTX 4070,NVIDIA,599,4,Graphics Cards,gpu;new\n"
            ",AMD,10,1,,\n"
            "Bad price,AMD,-5,1,,\n"
        )
        res = await client.post(
            "/products/import",
            files={"file": ("products.csv", csv_text.encode(), "text/csv")},
        )
        assert res.status_code == 200, res.text
        body = res.json()
        assert body["created"] == 1
        assert body["total"] == 3
        assert [e["row"] for e in body["errors"]] == [3, 4]
        assert "name" in body["errors"][0]["error"]
        assert "price" in body["errors"][1]["error"]

        categories = (await client.get("/categories/")).json()
        assert [(c["name"], c["product_count"]) for c in categories] == [("Graphics Cards", 1)]
        tags = sorted(t["name"] for t in (await client.get("/tags/")).json())
        assert tags == ["gpu", "new"]

    @pytest.mark.asyncio
    async def test_import_empty_file(self, client):
        res = await client.post("/products/import", files={"file": ("empty.csv", b"", "text/csv")})
        assert res.status_code == 400
