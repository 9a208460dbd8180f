"""Folder model — groups notes; a folder permission covers the notes inside it."""

import uuid

from sqlmodel import Field, SQLModel

from noteworthy.models.base import TimestampMixin, new_uuid


class Folder(TimestampMixin, SQLModel, table=True):
    __tablename__ = "folders"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    parent_id: uuid.UUID | None = Field(
        default=None, foreign_key="folders.id", nullable=True, index=True,
    )
    name: str = Field(max_length=255, nullable=False)
