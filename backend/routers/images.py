import os
import uuid as uuid_mod
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.config import settings
from core.imagekit_client import (
    ImageStorageError,
    decode_base64_image,
    delete_image_from_imagekit,
    upload_image_to_imagekit,
)
from core.logging import get_logger
from db.database import Image as ImageModel, get_async_session
from db.users import User

router = APIRouter()
logger = get_logger(__name__)

ALLOWED_EXTS = {"jpg", "jpeg", "png", "gif", "webp", "heic", "heif"}
CONTENT_TYPE_TO_EXT = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
    "image/heif": "heif",
}


def _check_size(file_data: bytes):
    if len(file_data) < 100:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Image file appears to be corrupted or too small",
        )
    if len(file_data) > settings.image_max_bytes:
        limit_mb = settings.image_max_bytes // (1024 * 1024)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Image size must be less than {limit_mb}MB",
        )


@router.post("/upload")
async def upload_image(
    file: Optional[UploadFile] = File(None),
    base64_image: Optional[str] = Form(None),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Upload a product image to ImageKit.
    Accepts either a file upload or a base64 data URL.
    Returns the public URL, the ImageKit file id and the stored name.
    """
    if file:
        file_data = await file.read()
        filename = file.filename or f"image_{uuid_mod.uuid4().hex[:8]}.jpg"

        content_type = (file.content_type or "").strip().lower()
        ext = os.path.splitext(filename)[1].lower().lstrip(".")
        if content_type and content_type != "application/octet-stream" and not content_type.startswith("image/"):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be an image")
        if (not content_type or content_type == "application/octet-stream") and ext not in ALLOWED_EXTS:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be an image")

    elif base64_image:
        content_type = "image/jpeg"
        prefix = base64_image.split(",", 1)[0] if "," in base64_image else ""
        if prefix.startswith("data:"):
            content_type = prefix[len("data:"):].split(";")[0].strip().lower() or content_type
            if not content_type.startswith("image/"):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be an image")
        try:
            file_data = decode_base64_image(base64_image)
        except ImageStorageError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        filename = f"image_{uuid_mod.uuid4().hex[:8]}.{CONTENT_TYPE_TO_EXT.get(content_type, 'jpg')}"

    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either 'file' or 'base64_image' must be provided",
        )

    _check_size(file_data)
    try:
        uploaded = await upload_image_to_imagekit(file_data, filename)
    except ImageStorageError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Error uploading image: {e}")

    try:
        db.add(
            ImageModel(
                user_id=user.id,
                file_id=uploaded["file_id"],
                url=uploaded["url"],
                name=uploaded.get("name"),
                content_type=content_type or None,
            )
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception("Recording uploaded image failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to record image: {e}")

    logger.info(f"User {user.id} uploaded image {uploaded['file_id']}")
    return uploaded


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    file_id: str,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(ImageModel).where(ImageModel.file_id == file_id, ImageModel.user_id == user.id)
    )
    image = res.scalar_one_or_none()
    if not image:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")

    try:
        await delete_image_from_imagekit(file_id)
    except ImageStorageError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Error deleting image: {e}")

    try:
        await db.delete(image)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception("Removing image record failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to delete image: {e}")
    logger.info(f"User {user.id} deleted image {file_id}")
    return None
