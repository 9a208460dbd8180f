"""Chunk vector store — atomic per-note replace, cosine k-NN queries.

Two backends share one interface:

* ``SqlVectorStore`` keeps vectors as JSON and ranks candidates with an exact
  numpy scan. Works on any SQL database (SQLite in tests).
* ``PgVectorStore`` stores pgvector columns and pushes the ranking into
  PostgreSQL (``<=>`` + ``ORDER BY ... LIMIT``), which may use the HNSW index
  and is therefore approximate.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from pgvector.sqlalchemy import Vector
from sqlalchemy import delete, func, text, type_coerce
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from noteworthy.core.config import get_settings
from noteworthy.core.database import async_session_factory, is_postgres_url
from noteworthy.models.chunk import NoteChunk
from noteworthy.services.chunking import TextChunk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkFilter:
    """Candidate restriction for a query.

    ``note_ids=None`` means unrestricted; an empty set matches nothing.
    """
    note_ids: frozenset[uuid.UUID] | None = None
    embedding_model: str | None = None


@dataclass
class ScoredChunk:
    """A chunk returned from vector search, with its cosine distance."""
    chunk_id: uuid.UUID
    note_id: uuid.UUID
    chunk_index: int
    chunk_text: str
    distance: float


def cosine_distances(matrix: np.ndarray, query: Sequence[float]) -> np.ndarray:
    """``1 - a·b / (‖a‖‖b‖)`` for every row of ``matrix``. Zero vectors score 1.0."""
    q = np.asarray(query, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / norms, 0.0)
    return 1.0 - np.clip(sims, -1.0, 1.0)


class SqlVectorStore:
    """Exact-scan store over the ``note_chunks`` table."""

    # Fixed column width, None when any width can be stored
    dimension: int | None = None

    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory or async_session_factory

    async def _lock_note(self, session: AsyncSession, note_id: uuid.UUID) -> None:
        """Serialize writers of one note across processes. No-op here."""

    async def store(
        self,
        note_id: uuid.UUID,
        chunks: Sequence[TextChunk],
        vectors: Sequence[Sequence[float]],
        embedding_model: str,
    ) -> int:
        """Replace the note's whole chunk set in one transaction."""
        if len(chunks) != len(vectors):
            raise ValueError("chunks and vectors must have the same length")

        rows = [
            NoteChunk(
                note_id=note_id,
                chunk_index=chunk.index,
                chunk_text=chunk.content,
                embedding=list(vector),
                embedding_model=embedding_model,
                dimensions=len(vector),
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        async with self._session_factory() as session:
            async with session.begin():
                await self._lock_note(session, note_id)
                await session.execute(delete(NoteChunk).where(NoteChunk.note_id == note_id))
                session.add_all(rows)
        return len(rows)

    async def clear(self, note_id: uuid.UUID) -> int:
        """Delete every chunk of a note in one transaction."""
        async with self._session_factory() as session:
            async with session.begin():
                await self._lock_note(session, note_id)
                result = await session.execute(
                    delete(NoteChunk).where(NoteChunk.note_id == note_id)
                )
        return result.rowcount or 0

    async def count(self, note_id: uuid.UUID) -> int:
        async with self._session_factory() as session:
            stmt = select(func.count()).select_from(NoteChunk).where(NoteChunk.note_id == note_id)
            return (await session.execute(stmt)).scalar_one()

    async def list_chunks(self, note_id: uuid.UUID) -> list[NoteChunk]:
        async with self._session_factory() as session:
            stmt = (
                select(NoteChunk)
                .where(NoteChunk.note_id == note_id)
                .order_by(NoteChunk.chunk_index)
            )
            return list((await session.execute(stmt)).scalars().all())

    def _apply_filter(self, stmt, candidate_filter: ChunkFilter, query_dimension: int):
        stmt = stmt.where(NoteChunk.dimensions == query_dimension)
        if candidate_filter.note_ids is not None:
            stmt = stmt.where(NoteChunk.note_id.in_(list(candidate_filter.note_ids)))
        if candidate_filter.embedding_model is not None:
            stmt = stmt.where(NoteChunk.embedding_model == candidate_filter.embedding_model)
        return stmt

    async def query(
        self,
        query_vector: Sequence[float],
        candidate_filter: ChunkFilter,
        k: int,
    ) -> list[ScoredChunk]:
        """Return up to ``k`` chunks by ascending cosine distance, ties by chunk id."""
        if k <= 0 or not query_vector:
            return []
        if candidate_filter.note_ids is not None and not candidate_filter.note_ids:
            return []

        stmt = select(
            NoteChunk.id,
            NoteChunk.note_id,
            NoteChunk.chunk_index,
            NoteChunk.chunk_text,
            NoteChunk.embedding,
        )
        stmt = self._apply_filter(stmt, candidate_filter, len(query_vector))
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        if not rows:
            return []

        matrix = np.asarray([row.embedding for row in rows], dtype=np.float64)
        distances = cosine_distances(matrix, query_vector)
        order = sorted(range(len(rows)), key=lambda i: (distances[i], str(rows[i].id)))
        return [
            ScoredChunk(
                chunk_id=rows[i].id,
                note_id=rows[i].note_id,
                chunk_index=rows[i].chunk_index,
                chunk_text=rows[i].chunk_text,
                distance=float(distances[i]),
            )
            for i in order[:k]
        ]


class PgVectorStore(SqlVectorStore):
    """pgvector-backed store; ranking runs inside PostgreSQL."""

    def __init__(self, session_factory=None, dimension: int | None = None) -> None:
        super().__init__(session_factory)
        self.dimension = dimension or get_settings().embedding_dimensions

    async def _lock_note(self, session: AsyncSession, note_id: uuid.UUID) -> None:
        await session.execute(
            text("SELECT pg_advisory_xact_lock(hashtextextended(:key, 0))"),
            {"key": f"note_chunks:{note_id}"},
        )

    async def query(
        self,
        query_vector: Sequence[float],
        candidate_filter: ChunkFilter,
        k: int,
    ) -> list[ScoredChunk]:
        if k <= 0 or not query_vector:
            return []
        if candidate_filter.note_ids is not None and not candidate_filter.note_ids:
            return []

        distance = (
            type_coerce(NoteChunk.embedding, Vector(self.dimension))
            .cosine_distance([float(x) for x in query_vector])
            .label("distance")
        )
        stmt = select(
            NoteChunk.id,
            NoteChunk.note_id,
            NoteChunk.chunk_index,
            NoteChunk.chunk_text,
            distance,
        )
        stmt = self._apply_filter(stmt, candidate_filter, len(query_vector))
        stmt = stmt.order_by(distance, NoteChunk.id).limit(k)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [
            ScoredChunk(
                chunk_id=row.id,
                note_id=row.note_id,
                chunk_index=row.chunk_index,
                chunk_text=row.chunk_text,
                distance=float(row.distance),
            )
            for row in rows
        ]


def get_vector_store(session_factory=None) -> SqlVectorStore:
    """Pick the backend from ``VECTOR_BACKEND`` (auto / pgvector / exact)."""
    settings = get_settings()
    backend = settings.vector_backend.lower()
    if backend == "auto":
        backend = "pgvector" if is_postgres_url(settings.database_url) else "exact"

    if backend == "pgvector":
        logger.info("Using pgvector chunk store (dimension=%d)", settings.embedding_dimensions)
        return PgVectorStore(session_factory)
    if backend == "exact":
        logger.info("Using exact-scan chunk store")
        return SqlVectorStore(session_factory)
    raise ValueError(
        f"Invalid VECTOR_BACKEND: {settings.vector_backend}. Must be 'auto', 'pgvector' or 'exact'."
    )
