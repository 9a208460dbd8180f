"""Semantic search over the caller's readable notes."""

import uuid

from fastapi import APIRouter, Query
from pydantic import BaseModel
from sqlmodel import select

from noteworthy.api.deps import Auth, Retrieval, Session
from noteworthy.models.note import Note

router = APIRouter(prefix="/search", tags=["search"])


class SearchHitRead(BaseModel):
    note_id: uuid.UUID
    title: str
    chunk_text: str
    score: float


class SearchResponse(BaseModel):
    query: str
    results: list[SearchHitRead]


@router.get("/semantic", response_model=SearchResponse)
async def semantic_search(
    auth: Auth,
    session: Session,
    engine: Retrieval,
    q: str = Query(..., max_length=2000),
    k: int | None = Query(default=None, ge=1, le=100),
    threshold: float | None = Query(default=None, ge=-1.0, le=1.0),
    note_ids: list[uuid.UUID] | None = Query(default=None, alias="note_id"),
) -> SearchResponse:
    hits = await engine.semantic_search(
        auth.user_id, q, k=k, threshold=threshold, note_ids=note_ids,
    )

    titles: dict[uuid.UUID, str] = {}
    if hits:
        stmt = select(Note.id, Note.title).where(
            Note.id.in_([h.note_id for h in hits])  # type: ignore[attr-defined]
        )
        titles = {note_id: title for note_id, title in (await session.execute(stmt)).all()}

    return SearchResponse(
        query=q,
        results=[
            SearchHitRead(
                note_id=h.note_id,
                title=titles.get(h.note_id, ""),
                chunk_text=h.chunk_text,
                score=round(h.score, 6),
            )
            for h in hits
        ],
    )
