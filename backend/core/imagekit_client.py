import base64
import os
import tempfile
from functools import lru_cache

from imagekitio import ImageKit
from imagekitio.models.UploadFileRequestOptions import UploadFileRequestOptions

from core.config import settings
from core.logging import get_logger

logger = get_logger(__name__)


class ImageStorageError(Exception):
    pass


@lru_cache(maxsize=1)
def get_imagekit() -> ImageKit:
    """Build the ImageKit client on first use."""
    return ImageKit(
        public_key=settings.imagekit_public_key,
        private_key=settings.imagekit_private_key,
        url_endpoint=settings.imagekit_url_endpoint,
    )


async def upload_image_to_imagekit(file_data: bytes, filename: str, folder: str = None) -> dict:
    """
    Upload an image to ImageKit.

    Args:
        file_data: Image file bytes
        filename: Name for the file
        folder: Folder path in ImageKit (default: settings.image_folder)

    Returns:
        dict with 'url', 'file_id' and 'name' keys
    """
    folder = folder or settings.image_folder
    if len(file_data) < 100:
        raise ImageStorageError(f"File data too small: {len(file_data)} bytes")

    # The SDK reads from a file object opened in binary mode.
    file_ext = os.path.splitext(filename)[1] or ".jpg"
    temp_file_path = None
    try:
        with tempfile.NamedTemporaryFile(delete=False, suffix=file_ext, mode="wb") as temp_file:
            temp_file.write(file_data)
            temp_file_path = temp_file.name

        options = UploadFileRequestOptions(
            folder=folder,
            use_unique_file_name=True,
            is_private_file=False,
        )
        with open(temp_file_path, "rb") as file_obj:
            upload = get_imagekit().upload_file(file=file_obj, file_name=filename, options=options)
    except ImageStorageError:
        raise
    except Exception as e:
        logger.exception(f"ImageKit upload of {filename} failed")
        raise ImageStorageError(f"Failed to upload image to ImageKit: {e}") from e
    finally:
        if temp_file_path and os.path.exists(temp_file_path):
            try:
                os.unlink(temp_file_path)
            except OSError as cleanup_error:
                logger.warning(f"Failed to delete temporary file {temp_file_path}: {cleanup_error}")

    if not upload or not upload.url:
        raise ImageStorageError("Upload returned no URL")

    logger.info(f"Uploaded {filename} to {folder}: file_id={upload.file_id}, size={len(file_data)} bytes")
    return {"url": upload.url, "file_id": upload.file_id, "name": upload.name}


def decode_base64_image(base64_string: str) -> bytes:
    """Decode a base64 image, with or without a `data:image/...;base64,` prefix."""
    if "," in base64_string:
        base64_string = base64_string.split(",", 1)[1]
    try:
        return base64.b64decode(base64_string, validate=True)
    except (ValueError, TypeError) as e:
        raise ImageStorageError(f"Invalid base64 image: {e}") from e


async def delete_image_from_imagekit(file_id: str) -> bool:
    try:
        get_imagekit().delete_file(file_id)
    except Exception as e:
        logger.exception(f"ImageKit delete of {file_id} failed")
        raise ImageStorageError(f"Failed to delete image from ImageKit: {e}") from e
    logger.info(f"Deleted image {file_id}")
    return True
