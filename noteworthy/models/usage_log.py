"""AiUsageLog model — advisory token/cost accounting for embedding calls."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from noteworthy.models.base import new_uuid, utcnow


class RequestType(StrEnum):
    EMBEDDING = "embedding"
    SEARCH = "search"


class AiUsageLog(SQLModel, table=True):
    __tablename__ = "ai_usage_logs"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    # No FK: the config may be deleted while its usage history is kept
    ai_config_id: uuid.UUID = Field(nullable=False, index=True)

    model_id: str = Field(max_length=200, nullable=False)
    request_type: RequestType = Field(nullable=False)
    input_tokens: int = Field(default=0)
    # Embeddings produce no output tokens
    output_tokens: int | None = Field(default=None)
    cost_estimate_usd: float | None = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)


# ── Pydantic schemas ─────────────────────────────────────────

class ModelUsage(SQLModel):
    model_id: str
    request_type: RequestType
    input_tokens: int
    request_count: int
    cost_usd: float
