"""Permission model — explicit view/edit grants on a note or a folder."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from noteworthy.models.base import TimestampMixin, new_uuid


class EntityType(StrEnum):
    NOTE = "note"
    FOLDER = "folder"


class AccessLevel(StrEnum):
    VIEW = "view"
    EDIT = "edit"


class Permission(TimestampMixin, SQLModel, table=True):
    __tablename__ = "permissions"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    entity_type: EntityType = Field(nullable=False)
    entity_id: uuid.UUID = Field(nullable=False, index=True)
    access_level: AccessLevel = Field(default=AccessLevel.VIEW)
