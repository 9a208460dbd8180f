"""AI configuration lookup — resolves a user's active embedding config."""

from __future__ import annotations

import json
import logging
import uuid

from cryptography.fernet import InvalidToken
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from noteworthy.core.security import decrypt_value, encrypt_value
from noteworthy.models.ai_config import UserAiConfig, UserAiConfigRead
from noteworthy.services.embedding import DEFAULT_MODELS, EmbeddingConfig

logger = logging.getLogger(__name__)


def load_models_config(row: UserAiConfig) -> dict:
    return json.loads(row.models_config) if isinstance(row.models_config, str) else row.models_config


def to_embedding_config(row: UserAiConfig, api_key: str | None) -> EmbeddingConfig:
    models = load_models_config(row) or {}
    model_name = (
        models.get("embeddingDeployment")
        or models.get("embeddingModel")
        or DEFAULT_MODELS[row.api_provider_type]
    )
    return EmbeddingConfig(
        id=str(row.id),
        provider_type=row.api_provider_type,
        model_name=model_name,
        dimension=row.embedding_dimensions,
        base_url=row.base_url,
        api_key=api_key,
        api_version=models.get("apiVersion"),
    )


def to_read(row: UserAiConfig) -> UserAiConfigRead:
    return UserAiConfigRead(
        id=row.id,
        name=row.name,
        api_provider_type=row.api_provider_type,
        base_url=row.base_url,
        has_api_key=row.encrypted_api_key is not None,
        models_config=load_models_config(row),
        embedding_dimensions=row.embedding_dimensions,
        is_default_embedding=row.is_default_embedding,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def encrypt_api_key(api_key: str | None) -> str | None:
    return encrypt_value(api_key) if api_key else None


def resolve_config(row: UserAiConfig) -> EmbeddingConfig | None:
    """Decrypt a stored config. Returns None when the key cannot be decrypted."""
    api_key: str | None = None
    if row.encrypted_api_key:
        try:
            api_key = decrypt_value(row.encrypted_api_key)
        except (InvalidToken, RuntimeError, ValueError):
            logger.error("Failed to decrypt API key for AI config %s (user %s)", row.id, row.user_id)
            return None
    return to_embedding_config(row, api_key)


async def get_user_ai_config(
    session: AsyncSession,
    user_id: uuid.UUID,
    config_id: uuid.UUID,
) -> UserAiConfig | None:
    stmt = select(UserAiConfig).where(
        UserAiConfig.id == config_id,
        UserAiConfig.user_id == user_id,
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_active_embedding_config(
    session: AsyncSession,
    user_id: uuid.UUID,
) -> EmbeddingConfig | None:
    """The user's default embedding config, else their oldest config, else None."""
    stmt = (
        select(UserAiConfig)
        .where(UserAiConfig.user_id == user_id)
        .order_by(
            UserAiConfig.is_default_embedding.desc(),  # type: ignore[attr-defined]
            UserAiConfig.created_at.asc(),  # type: ignore[attr-defined]
        )
        .limit(1)
    )
    row = (await session.execute(stmt)).scalar_one_or_none()
    if row is None:
        return None
    return resolve_config(row)
