"""Image upload endpoints with the ImageKit calls patched out."""

import base64
from unittest.mock import AsyncMock, patch

import pytest

from core.imagekit_client import ImageStorageError

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 200
UPLOADED = {"url": "https://ik.example/products/a.png", "file_id": "file_123", "name": "a.png"}


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_file(self, client):
        with patch("routers.images.upload_image_to_imagekit", new=AsyncMock(return_value=UPLOADED)) as upload:
            res = await client.post("/images/upload", files={"file": ("a.png", PNG_BYTES, "image/png")})
        assert res.status_code == 200, res.text
        assert res.json() == UPLOADED
        data, filename = upload.await_args.args
        assert data == PNG_BYTES
        assert filename == "a.png"

    @pytest.mark.asyncio
    async def test_octet_stream_accepted_by_extension(self, client):
        with patch("routers.images.upload_image_to_imagekit", new=AsyncMock(return_value=UPLOADED)):
            res = await client.post(
                "/images/upload",
                files={"file": ("photo.webp", PNG_BYTES, "application/octet-stream")},
            )
        assert res.status_code == 200

    @pytest.mark.asyncio
    async def test_non_image_rejected(self, client):
        with patch("routers.images.upload_image_to_imagekit", new=AsyncMock()) as upload:
            res = await client.post("/images/upload", files={"file": ("notes.txt", b"x" * 200, "text/plain")})
        assert res.status_code == 400
        assert res.json()["detail"] == "File must be an image"
        upload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_tiny_file_rejected(self, client):
        res = await client.post("/images/upload", files={"file": ("a.png", b"\x89PNG", "image/png")})
        assert res.status_code == 400
        assert "too small" in res.json()["detail"]

    @pytest.mark.asyncio
    async def test_base64_data_url(self, client):
        data_url = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
        with patch("routers.images.upload_image_to_imagekit", new=AsyncMock(return_value=UPLOADED)) as upload:
            res = await client.post("/images/upload", data={"base64_image": data_url})
        assert res.status_code == 200, res.text
        data, filename = upload.await_args.args
        assert data == PNG_BYTES
        assert filename.endswith(".png")

    @pytest.mark.asyncio
    async def test_invalid_base64(self, client):
        res = await client.post("/images/upload", data={"base64_image": "data:image/png;base64,@@@"})
        assert res.status_code == 400

    @pytest.mark.asyncio
    async def test_nothing_provided(self, client):
        res = await client.post("/images/upload")
        assert res.status_code == 400

    @pytest.mark.asyncio
    async def test_storage_failure_is_bad_gateway(self, client):
        failing = AsyncMock(side_effect=ImageStorageError("ImageKit unavailable"))
        with patch("routers.images.upload_image_to_imagekit", new=failing):
            res = await client.post("/images/upload", files={"file": ("a.png", PNG_BYTES, "image/png")})
        assert res.status_code == 502

    @pytest.mark.asyncio
    async def test_requires_login(self, anon_client):
        res = await anon_client.post("/images/upload", files={"file": ("a.png", PNG_BYTES, "image/png")})
        assert res.status_code == 401


class TestDelete:
    @pytest.fixture
    def uploaded(self, client):
        async def _uploaded() -> dict:
            with patch("routers.images.upload_image_to_imagekit", new=AsyncMock(return_value=UPLOADED)):
                res = await client.post("/images/upload", files={"file": ("a.png", PNG_BYTES, "image/png")})
            assert res.status_code == 200, res.text
            return res.json()

        return _uploaded

    @pytest.mark.asyncio
    async def test_delete(self, client, uploaded):
        await uploaded()
        with patch("routers.images.delete_image_from_imagekit", new=AsyncMock()) as delete:
            res = await client.delete("/images/file_123")
        assert res.status_code == 204
        delete.assert_awaited_once_with("file_123")

        with patch("routers.images.delete_image_from_imagekit", new=AsyncMock()) as delete:
            res = await client.delete("/images/file_123")
        assert res.status_code == 404
        delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_file_is_not_found(self, client):
        with patch("routers.images.delete_image_from_imagekit", new=AsyncMock()) as delete:
            res = await client.delete("/images/somebody_elses_file")
        assert res.status_code == 404
        delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_delete(self, client, uploaded, other_user, login_as, user):
        await uploaded()
        login_as(other_user)
        with patch("routers.images.delete_image_from_imagekit", new=AsyncMock()) as delete:
            res = await client.delete("/images/file_123")
        assert res.status_code == 404
        delete.assert_not_awaited()

        login_as(user)
        with patch("routers.images.delete_image_from_imagekit", new=AsyncMock()):
            assert (await client.delete("/images/file_123")).status_code == 204
