"""Registration and login through the real fastapi-users routes."""

import pytest

CREDENTIALS = {"email": "shop@example.com", "password": "correct-horse-battery"}


async def register(client, **extra):
    return await client.post("/auth/register", json={**CREDENTIALS, **extra})


async def bearer_login(client) -> dict:
    res = await client.post(
        "/auth/jwt/login",
        data={"username": CREDENTIALS["email"], "password": CREDENTIALS["password"]},
    )
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


class TestAuth:
    @pytest.mark.asyncio
    async def test_register_and_read_profile(self, anon_client):
        res = await register(anon_client, name="Corner Shop")
        assert res.status_code == 201, res.text
        assert res.json()["email"] == CREDENTIALS["email"]

        headers = await bearer_login(anon_client)
        me = await anon_client.get("/users/me", headers=headers)
        assert me.status_code == 200
        assert me.json()["name"] == "Corner Shop"

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, anon_client):
        await register(anon_client)
        res = await register(anon_client)
        assert res.status_code == 400

    @pytest.mark.asyncio
    async def test_wrong_password(self, anon_client):
        await register(anon_client)
        res = await anon_client.post(
            "/auth/jwt/login",
            data={"username": CREDENTIALS["email"], "password": "nope"},
        )
        assert res.status_code == 400

    @pytest.mark.asyncio
    async def test_session_cookie_login(self, anon_client):
        await register(anon_client)
        res = await anon_client.post(
            "/auth/session/login",
            data={"username": CREDENTIALS["email"], "password": CREDENTIALS["password"]},
        )
        assert res.status_code == 204
        token = res.cookies.get("stockroom_session")
        assert token

        me = await anon_client.get("/users/me", headers={"Cookie": f"stockroom_session={token}"})
        assert me.status_code == 200

    @pytest.mark.asyncio
    async def test_token_scopes_inventory_to_the_account(self, anon_client):
        await register(anon_client)
        headers = await bearer_login(anon_client)

        res = await anon_client.post(
            "/products/",
            headers=headers,
            json={"name": "Ryzen 5 7600", "manufacturer": "AMD", "price": 199.99, "quantity": 1},
        )
        assert res.status_code == 201, res.text
        listing = (await anon_client.get("/products/", headers=headers)).json()
        assert listing["total"] == 1

    @pytest.mark.asyncio
    async def test_update_profile_image(self, anon_client):
        await register(anon_client)
        headers = await bearer_login(anon_client)

        res = await anon_client.patch(
            "/users/me",
            headers=headers,
            json={"name": "Corner Shop", "image": "https://ik.example/avatars/shop.png"},
        )
        assert res.status_code == 200, res.text
        assert res.json()["image"] == "https://ik.example/avatars/shop.png"

        res = await anon_client.patch("/users/me", headers=headers, json={"image": "ftp://nope/shop.png"})
        assert res.status_code == 422

        res = await anon_client.patch("/users/me", headers=headers, json={"image": "  "})
        assert res.status_code == 200
        assert res.json()["image"] is None
