"""Per-note indexing endpoints: queue or run a reindex, inspect chunks."""

import uuid

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from noteworthy.api.deps import Auth, Session, Writer
from noteworthy.models.chunk import NoteChunkRead
from noteworthy.models.note import Note
from noteworthy.services.permissions import can_edit, can_read
from noteworthy.workers.main import enqueue_job

router = APIRouter(prefix="/notes", tags=["indexing"])


class ReindexQueued(BaseModel):
    status: str
    message: str
    job_id: str | None = None


class ReindexResult(BaseModel):
    note_id: uuid.UUID
    status: str
    chunk_count: int


class NoteChunksResponse(BaseModel):
    note_id: uuid.UUID
    count: int
    chunks: list[NoteChunkRead]


async def _get_note_or_404(note_id: uuid.UUID, session) -> Note:
    note = await session.get(Note, note_id)
    if note is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")
    return note


async def _require_edit(note_id: uuid.UUID, auth, session) -> None:
    await _get_note_or_404(note_id, session)
    if not await can_edit(session, auth.user_id, note_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Edit access required")


@router.post(
    "/{note_id}/reindex",
    response_model=ReindexQueued,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_reindex(note_id: uuid.UUID, auth: Auth, session: Session) -> ReindexQueued:
    """Enqueue a background reindex of the note."""
    await _require_edit(note_id, auth, session)
    job_id = await enqueue_job("reindex_note", note_id=str(note_id))
    return ReindexQueued(
        status="accepted",
        message=f"Reindex queued for note {note_id}",
        job_id=job_id,
    )


@router.post("/{note_id}/reindex/sync", response_model=ReindexResult)
async def reindex_now(
    note_id: uuid.UUID,
    auth: Auth,
    session: Session,
    writer: Writer,
) -> ReindexResult:
    """Reindex inline. A reindex of the same note already running yields 409."""
    await _require_edit(note_id, auth, session)
    result = await writer.reindex_note(note_id, wait=False)
    return ReindexResult(note_id=result.note_id, status=str(result.status), chunk_count=result.chunk_count)


@router.get("/{note_id}/chunks", response_model=NoteChunksResponse)
async def list_note_chunks(
    note_id: uuid.UUID,
    auth: Auth,
    session: Session,
    writer: Writer,
) -> NoteChunksResponse:
    await _get_note_or_404(note_id, session)
    if not await can_read(session, auth.user_id, note_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Read access required")

    chunks = await writer.store.list_chunks(note_id)
    return NoteChunksResponse(
        note_id=note_id,
        count=len(chunks),
        chunks=[NoteChunkRead.model_validate(c, from_attributes=True) for c in chunks],
    )
