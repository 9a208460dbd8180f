"""Embedding usage statistics."""

from fastapi import APIRouter
from pydantic import BaseModel

from noteworthy.api.deps import Auth, Session
from noteworthy.core.cache import usage_cache
from noteworthy.core.pricing import get_embedding_price
from noteworthy.models.usage_log import ModelUsage
from noteworthy.services.usage import summarize_usage

router = APIRouter(prefix="/stats", tags=["stats"])


class ModelUsageRead(ModelUsage):
    cost_per_1m: float


class UsageResponse(BaseModel):
    total_input_tokens: int
    total_requests: int
    total_cost_usd: float
    by_model: list[ModelUsageRead]


@router.get("/usage", response_model=UsageResponse)
async def usage_stats(auth: Auth, session: Session) -> UsageResponse:
    cache_key = ("usage", auth.user_id)
    cached = usage_cache.get(cache_key)
    if cached is not None:
        return cached

    rows = await summarize_usage(session, auth.user_id)
    by_model = [
        ModelUsageRead(**row.model_dump(), cost_per_1m=get_embedding_price(row.model_id))
        for row in rows
    ]
    response = UsageResponse(
        total_input_tokens=sum(r.input_tokens for r in rows),
        total_requests=sum(r.request_count for r in rows),
        total_cost_usd=round(sum(r.cost_usd for r in rows), 6),
        by_model=by_model,
    )
    usage_cache.put(cache_key, response)
    return response
