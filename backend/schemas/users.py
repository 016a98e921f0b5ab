from typing import Optional
from uuid import UUID

from fastapi_users import schemas
from pydantic import field_validator

from schemas.products import check_image_url


class UserRead(schemas.BaseUser[UUID]):
    name: Optional[str] = None
    image: Optional[str] = None


class UserCreate(schemas.BaseUserCreate):
    name: Optional[str] = None
    image: Optional[str] = None

    @field_validator("image")
    @classmethod
    def _image(cls, v: Optional[str]) -> Optional[str]:
        return check_image_url(v)


class UserUpdate(schemas.BaseUserUpdate):
    name: Optional[str] = None
    image: Optional[str] = None

    @field_validator("image")
    @classmethod
    def _image(cls, v: Optional[str]) -> Optional[str]:
        return check_image_url(v)
