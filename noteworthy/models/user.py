"""User model — account owned by the auth service, read here for ownership."""

import uuid

from sqlmodel import Field, SQLModel

from noteworthy.models.base import TimestampMixin, new_uuid


class User(TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    email: str = Field(max_length=320, nullable=False, unique=True, index=True)
    display_name: str = Field(default="", max_length=255)
    is_active: bool = Field(default=True)
