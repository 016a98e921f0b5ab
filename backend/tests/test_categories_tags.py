"""Categories and tags: uniqueness per tenant, counts and deletion behaviour."""

import pytest
from sqlalchemy import select

from db.database import Category, User


class TestCategories:
    @pytest.mark.asyncio
    async def test_duplicate_name_conflicts_case_insensitively(self, client, make_category):
        await make_category("Memory")
        res = await client.post("/categories/", json={"name": "memory"})
        assert res.status_code == 409
        assert "name" in res.json()["detail"]["errors"]

    @pytest.mark.asyncio
    async def test_same_name_allowed_for_another_tenant(self, client, make_category, other_user, login_as):
        await make_category("Memory")
        login_as(other_user)
        res = await client.post("/categories/", json={"name": "Memory"})
        assert res.status_code == 201

    @pytest.mark.asyncio
    async def test_rows_join_back_to_their_owner(self, db_session, user):
        db_session.add(Category(user_id=user.id, name="Storage"))
        await db_session.commit()

        res = await db_session.execute(
            select(User.email, Category.name).join(Category, Category.user_id == User.id)
        )
        assert res.all() == [("owner@example.com", "Storage")]

    @pytest.mark.asyncio
    async def test_blank_name_is_rejected(self, client):
        res = await client.post("/categories/", json={"name": "   "})
        assert res.status_code == 422
        assert "name" in res.json()["errors"]

    @pytest.mark.asyncio
    async def test_list_includes_product_counts(self, client, make_category, make_product):
        cpu = await make_category("CPUs")
        await make_category("Cables")
        await make_product(category_id=cpu["id"])
        await make_product(category_id=cpu["id"])

        res = await client.get("/categories/")
        assert [(c["name"], c["product_count"]) for c in res.json()] == [("Cables", 0), ("CPUs", 2)]

    @pytest.mark.asyncio
    async def test_rename(self, client, make_category):
        cat = await make_category("Misc")
        other = await make_category("Cables")

        res = await client.patch(f"/categories/{cat['id']}", json={"name": "Miscellaneous"})
        assert res.status_code == 200
        assert res.json()["name"] == "Miscellaneous"

        res = await client.patch(f"/categories/{cat['id']}", json={"name": other["name"]})
        assert res.status_code == 409

    @pytest.mark.asyncio
    async def test_delete_leaves_products_uncategorized(self, client, make_category, make_product):
        cat = await make_category("Temporary")
        product = await make_product(category_id=cat["id"])

        res = await client.delete(f"/categories/{cat['id']}")
        assert res.status_code == 204

        body = (await client.get(f"/products/{product['id']}")).json()
        assert body["category_id"] is None
        assert body["category_name"] is None

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_delete(self, client, make_category, other_user, login_as):
        cat = await make_category("Mine")
        login_as(other_user)
        assert (await client.delete(f"/categories/{cat['id']}")).status_code == 404


class TestTags:
    @pytest.mark.asyncio
    async def test_create_list_and_count(self, client, make_product):
        tag = (await client.post("/tags/", json={"name": "gaming"})).json()
        await make_product(tag_ids=[tag["id"]])

        res = await client.get("/tags/")
        assert res.json() == [{"id": tag["id"], "name": "gaming", "product_count": 1}]

    @pytest.mark.asyncio
    async def test_duplicate_tag_conflicts(self, client):
        await client.post("/tags/", json={"name": "gaming"})
        res = await client.post("/tags/", json={"name": "GAMING"})
        assert res.status_code == 409

    @pytest.mark.asyncio
    async def test_tag_name_length_limit(self, client):
        res = await client.post("/tags/", json={"name": "x" * 51})
        assert res.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_tag_detaches_products(self, client, make_product):
        tag = (await client.post("/tags/", json={"name": "clearance"})).json()
        product = await make_product(tag_ids=[tag["id"]])

        assert (await client.delete(f"/tags/{tag['id']}")).status_code == 204
        assert (await client.get(f"/products/{product['id']}")).json()["tags"] == []

    @pytest.mark.asyncio
    async def test_rename_tag_logs_activity(self, client):
        tag = (await client.post("/tags/", json={"name": "old"})).json()
        res = await client.patch(f"/tags/{tag['id']}", json={"name": "new"})
        assert res.json()["name"] == "new"

        entries = (await client.get("/activity/", params={"entity_type": "tag"})).json()
        assert entries[0]["action"] == "update"
        assert entries[0]["changes"] == {"name": {"from": "old", "to": "new"}}
