"""Best-effort embedding usage accounting.

Usage rows are advisory: a failure to record one is logged and never
propagates into the indexing or search call that triggered it.
"""

from __future__ import annotations

import logging
import math
import uuid

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from noteworthy.core.database import async_session_factory
from noteworthy.core.pricing import calc_embedding_cost
from noteworthy.models.usage_log import AiUsageLog, ModelUsage, RequestType
from noteworthy.services.embedding import EmbeddingConfig

logger = logging.getLogger(__name__)

# Rough approximation: 1 token ≈ 4 characters
CHARS_PER_TOKEN = 4


def estimate_tokens(texts: list[str]) -> int:
    return math.ceil(sum(len(t) for t in texts) / CHARS_PER_TOKEN)


class UsageRecorder:
    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory or async_session_factory

    async def record(
        self,
        principal_id: uuid.UUID,
        config: EmbeddingConfig,
        request_type: RequestType,
        texts: list[str],
    ) -> None:
        """Insert one usage row. Never raises."""
        try:
            tokens = estimate_tokens(texts)
            row = AiUsageLog(
                user_id=principal_id,
                ai_config_id=uuid.UUID(str(config.id)),
                model_id=config.model_name,
                request_type=request_type,
                input_tokens=tokens,
                output_tokens=None,
                cost_estimate_usd=calc_embedding_cost(config.model_name, tokens, config.self_hosted),
            )
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except Exception:
            logger.exception(
                "Failed to log AI usage for user %s (%s)", principal_id, request_type
            )


async def summarize_usage(session: AsyncSession, user_id: uuid.UUID) -> list[ModelUsage]:
    """Per-model, per-request-type totals for one user."""
    stmt = (
        select(
            AiUsageLog.model_id,
            AiUsageLog.request_type,
            func.coalesce(func.sum(AiUsageLog.input_tokens), 0),
            func.count(),
            func.coalesce(func.sum(AiUsageLog.cost_estimate_usd), 0.0),
        )
        .where(AiUsageLog.user_id == user_id)
        .group_by(AiUsageLog.model_id, AiUsageLog.request_type)
        .order_by(AiUsageLog.model_id, AiUsageLog.request_type)
    )
    rows = (await session.execute(stmt)).all()
    return [
        ModelUsage(
            model_id=model_id,
            request_type=request_type,
            input_tokens=int(tokens),
            request_count=int(count),
            cost_usd=round(float(cost), 6),
        )
        for model_id, request_type, tokens, count, cost in rows
    ]
