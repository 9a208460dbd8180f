"""Bulk indexing of every note the caller owns."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from noteworthy.api.deps import Auth, Session
from noteworthy.core.errors import ConfigurationMissing
from noteworthy.services.ai_config import get_active_embedding_config
from noteworthy.workers.main import enqueue_job

router = APIRouter(prefix="/ai", tags=["indexing"])


class IndexNotesQueued(BaseModel):
    status: str
    message: str
    job_id: str | None = None


@router.post(
    "/index-notes",
    response_model=IndexNotesQueued,
    status_code=status.HTTP_202_ACCEPTED,
)
async def index_notes(auth: Auth, session: Session) -> IndexNotesQueued:
    """Enqueue a job that reindexes all of the caller's notes."""
    if await get_active_embedding_config(session, auth.user_id) is None:
        raise ConfigurationMissing("Configure an embedding provider before indexing notes")

    job_id = await enqueue_job("index_user_notes", user_id=str(auth.user_id))
    return IndexNotesQueued(
        status="accepted",
        message="Indexing queued for all notes",
        job_id=job_id,
    )
