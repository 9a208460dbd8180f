"""Import all models so SQLModel.metadata picks them up."""

from noteworthy.models.ai_config import (
    ProviderType,
    UserAiConfig,
    UserAiConfigCreate,
    UserAiConfigRead,
    UserAiConfigUpdate,
)
from noteworthy.models.chunk import NoteChunk, NoteChunkRead
from noteworthy.models.folder import Folder
from noteworthy.models.note import Note
from noteworthy.models.permission import AccessLevel, EntityType, Permission
from noteworthy.models.usage_log import AiUsageLog, ModelUsage, RequestType
from noteworthy.models.user import User

__all__ = [
    "AccessLevel",
    "AiUsageLog",
    "EntityType",
    "Folder",
    "ModelUsage",
    "Note",
    "NoteChunk",
    "NoteChunkRead",
    "Permission",
    "ProviderType",
    "RequestType",
    "User",
    "UserAiConfig",
    "UserAiConfigCreate",
    "UserAiConfigRead",
    "UserAiConfigUpdate",
]
