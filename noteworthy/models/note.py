"""Note model — the document whose content gets chunked and embedded."""

import uuid

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from noteworthy.models.base import TimestampMixin, new_uuid


class Note(TimestampMixin, SQLModel, table=True):
    __tablename__ = "notes"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    folder_id: uuid.UUID | None = Field(
        default=None, foreign_key="folders.id", nullable=True, index=True,
    )

    title: str = Field(default="", max_length=500)
    content_markdown: str | None = Field(default=None, sa_column=Column(Text))
