"""Embedding provider configurations — all queries scoped to the caller."""

import json
import logging
import uuid

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import update
from sqlmodel import select

from noteworthy.api.deps import Auth, Providers, Session
from noteworthy.core.errors import ConfigurationMissing, ProviderError
from noteworthy.models.ai_config import (
    UserAiConfig,
    UserAiConfigCreate,
    UserAiConfigRead,
    UserAiConfigUpdate,
)
from noteworthy.models.base import utcnow
from noteworthy.services.ai_config import (
    encrypt_api_key,
    get_user_ai_config,
    resolve_config,
    to_read,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai-configs", tags=["ai-configs"])

PROBE_TEXT = "Connection test"


class ConfigTestResult(BaseModel):
    ok: bool
    model: str
    configured_dimension: int
    returned_dimension: int | None = None
    dimension_mismatch: bool = False
    error: str | None = None


async def _clear_default(session, user_id: uuid.UUID) -> None:
    await session.execute(
        update(UserAiConfig)
        .where(UserAiConfig.user_id == user_id)
        .values(is_default_embedding=False)
    )


@router.post("", response_model=UserAiConfigRead, status_code=status.HTTP_201_CREATED)
async def create_ai_config(
    body: UserAiConfigCreate,
    auth: Auth,
    session: Session,
) -> UserAiConfigRead:
    if body.is_default_embedding:
        await _clear_default(session, auth.user_id)

    row = UserAiConfig(
        user_id=auth.user_id,
        name=body.name,
        api_provider_type=body.api_provider_type,
        base_url=body.base_url,
        encrypted_api_key=encrypt_api_key(body.api_key),
        models_config=json.dumps(body.models_config),
        embedding_dimensions=body.embedding_dimensions,
        is_default_embedding=body.is_default_embedding,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return to_read(row)


@router.get("", response_model=list[UserAiConfigRead])
async def list_ai_configs(auth: Auth, session: Session) -> list[UserAiConfigRead]:
    stmt = (
        select(UserAiConfig)
        .where(UserAiConfig.user_id == auth.user_id)
        .order_by(UserAiConfig.created_at)  # type: ignore[arg-type]
    )
    result = await session.execute(stmt)
    return [to_read(row) for row in result.scalars().all()]


@router.get("/{config_id}", response_model=UserAiConfigRead)
async def get_ai_config(config_id: uuid.UUID, auth: Auth, session: Session) -> UserAiConfigRead:
    return to_read(await _get_or_404(config_id, auth.user_id, session))


@router.patch("/{config_id}", response_model=UserAiConfigRead)
async def update_ai_config(
    config_id: uuid.UUID,
    body: UserAiConfigUpdate,
    auth: Auth,
    session: Session,
) -> UserAiConfigRead:
    row = await _get_or_404(config_id, auth.user_id, session)

    update_data = body.model_dump(exclude_unset=True)

    # Key rotation; an empty key removes the stored one
    if "api_key" in update_data:
        row.encrypted_api_key = encrypt_api_key(update_data.pop("api_key"))
    if "models_config" in update_data:
        row.models_config = json.dumps(update_data.pop("models_config") or {})
    if update_data.get("is_default_embedding"):
        await _clear_default(session, auth.user_id)

    for field, value in update_data.items():
        if value is not None:
            setattr(row, field, value)

    row.updated_at = utcnow()
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return to_read(row)


@router.delete("/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ai_config(config_id: uuid.UUID, auth: Auth, session: Session) -> None:
    row = await _get_or_404(config_id, auth.user_id, session)
    await session.delete(row)
    await session.commit()


@router.post("/{config_id}/test", response_model=ConfigTestResult)
async def test_ai_config(
    config_id: uuid.UUID,
    auth: Auth,
    session: Session,
    providers: Providers,
) -> ConfigTestResult:
    """Embed a probe string and compare the returned width with the configured one."""
    row = await _get_or_404(config_id, auth.user_id, session)
    config = resolve_config(row)
    if config is None:
        raise ConfigurationMissing("Stored API key could not be decrypted")

    try:
        vector = await providers(config).embed_query(PROBE_TEXT)
    except ProviderError as exc:
        logger.warning("AI config %s test failed: %s", config_id, exc)
        return ConfigTestResult(
            ok=False,
            model=config.model_name,
            configured_dimension=config.dimension,
            error=exc.message,
        )

    mismatch = len(vector) != config.dimension
    return ConfigTestResult(
        ok=not mismatch,
        model=config.model_name,
        configured_dimension=config.dimension,
        returned_dimension=len(vector),
        dimension_mismatch=mismatch,
    )


# ── Internal helper ───────────────────────────────────────────

async def _get_or_404(config_id: uuid.UUID, user_id: uuid.UUID, session) -> UserAiConfig:
    row = await get_user_ai_config(session, user_id, config_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="AI config not found")
    return row
