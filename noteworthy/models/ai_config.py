"""UserAiConfig model — a user's embedding provider configuration."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from noteworthy.models.base import TimestampMixin, new_uuid


class ProviderType(StrEnum):
    OPENAI = "openai"
    AZURE_OPENAI = "azure_openai"
    CUSTOM_OPENAI_COMPATIBLE = "custom_openai_compatible"
    OLLAMA = "ollama"


class UserAiConfig(TimestampMixin, SQLModel, table=True):
    __tablename__ = "user_ai_configs"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)

    name: str = Field(max_length=255, nullable=False)
    api_provider_type: ProviderType = Field(nullable=False)
    base_url: str | None = Field(default=None, max_length=1000)

    # Fernet ciphertext of the provider API key. NULL for keyless local models.
    encrypted_api_key: str | None = Field(default=None, sa_column=Column(Text))

    # JSON text, e.g. {"embeddingModel": "text-embedding-3-small"} or
    # {"embeddingDeployment": "ada", "apiVersion": "2023-12-01-preview"}
    models_config: str = Field(default="{}", sa_column=Column(Text, nullable=False, server_default="{}"))

    embedding_dimensions: int = Field(default=1536, ge=1, le=16000)
    is_default_embedding: bool = Field(default=False)


# ── Pydantic schemas ─────────────────────────────────────────

class UserAiConfigCreate(SQLModel):
    name: str = Field(max_length=255)
    api_provider_type: ProviderType
    base_url: str | None = Field(default=None, max_length=1000)
    api_key: str | None = Field(default=None, description="Provider API key (encrypted at rest)")
    models_config: dict = Field(default_factory=dict)
    embedding_dimensions: int = Field(default=1536, ge=1, le=16000)
    is_default_embedding: bool = False


class UserAiConfigUpdate(SQLModel):
    name: str | None = Field(default=None, max_length=255)
    base_url: str | None = Field(default=None, max_length=1000)
    api_key: str | None = Field(default=None, description="New provider API key; empty string removes it")
    models_config: dict | None = None
    embedding_dimensions: int | None = Field(default=None, ge=1, le=16000)
    is_default_embedding: bool | None = None


class UserAiConfigRead(SQLModel):
    id: uuid.UUID
    name: str
    api_provider_type: ProviderType
    base_url: str | None
    has_api_key: bool = Field(description="True if an API key is stored")
    models_config: dict
    embedding_dimensions: int
    is_default_embedding: bool
    created_at: datetime
    updated_at: datetime
