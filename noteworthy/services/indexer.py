"""Index writer — chunk, embed and atomically replace a note's chunk set.

Flow for one note:
  1. Chunk the content (CPU only, no transaction)
  2. Empty content: clear the note's chunks and stop
  3. Embed the chunk texts (network, no transaction)
  4. Check every vector against the configured dimension
  5. Delete old chunks + insert new ones in a single transaction

Any failure before step 5 leaves the stored chunk set untouched. Reindexing of
one note is serialized by a per-note lock; different notes run in parallel.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from sqlmodel import select

from noteworthy.core.concurrency import (
    CancellationToken,
    KeyedLock,
    check_cancelled,
    run_to_completion,
)
from noteworthy.core.config import get_settings
from noteworthy.core.database import async_session_factory
from noteworthy.core.errors import (
    ConfigurationMissing,
    DocumentNotFound,
    InvalidDimension,
    NoteworthyError,
)
from noteworthy.models.note import Note
from noteworthy.models.usage_log import RequestType
from noteworthy.services.ai_config import get_active_embedding_config
from noteworthy.services.chunking import chunk_text
from noteworthy.services.embedding import EmbeddingConfig, EmbeddingProvider, get_embedding_provider
from noteworthy.services.retry import with_retries
from noteworthy.services.usage import UsageRecorder
from noteworthy.services.vector_store import SqlVectorStore, get_vector_store

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[EmbeddingConfig], EmbeddingProvider]


def default_provider_factory(config: EmbeddingConfig) -> EmbeddingProvider:
    """Bare provider for the config, wrapped in the settings retry policy."""
    return with_retries(get_embedding_provider(config))


@dataclass(frozen=True)
class RequestContext:
    """Who is acting and with which resolved embedding configuration."""
    principal_id: uuid.UUID
    config: EmbeddingConfig


class IndexStatus(StrEnum):
    INDEXED = "indexed"
    CLEARED = "cleared"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class IndexResult:
    note_id: uuid.UUID
    chunk_count: int
    status: IndexStatus


@dataclass
class BulkIndexResult:
    total: int = 0
    indexed: int = 0
    skipped: int = 0
    errors: int = 0
    details: list[dict] = field(default_factory=list)


class IndexWriter:
    def __init__(
        self,
        store: SqlVectorStore | None = None,
        session_factory=None,
        provider_factory: ProviderFactory | None = None,
        locks: KeyedLock | None = None,
        usage: UsageRecorder | None = None,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory or async_session_factory
        self._store = store if store is not None else get_vector_store(self._session_factory)
        self._provider_factory = provider_factory or default_provider_factory
        self._locks = locks if locks is not None else KeyedLock()
        self._usage = usage or UsageRecorder(self._session_factory)
        self.chunk_size = chunk_size or settings.chunk_size
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else settings.chunk_overlap

    @property
    def store(self) -> SqlVectorStore:
        return self._store

    def is_indexing(self, note_id: uuid.UUID) -> bool:
        return self._locks.locked(note_id)

    async def reindex(
        self,
        note_id: uuid.UUID,
        content: str,
        ctx: RequestContext,
        *,
        cancel: CancellationToken | None = None,
        wait: bool = True,
    ) -> IndexResult:
        """Rebuild the note's chunk set from ``content``.

        Args:
            note_id: Note whose chunks are replaced.
            content: Current note content; empty content clears the index.
            ctx: Acting principal and the embedding config to use.
            cancel: Checked before every network call and before the transaction.
            wait: When False, raise ReindexInProgress instead of queueing
                behind a reindex of the same note.
        """
        async with self._locks.hold(note_id, wait=wait):
            return await self._reindex_locked(note_id, content, ctx, cancel)

    async def reindex_note(
        self,
        note_id: uuid.UUID,
        *,
        cancel: CancellationToken | None = None,
        wait: bool = True,
    ) -> IndexResult:
        """Reindex a stored note with its owner's active embedding config.

        The content is read after the lock is taken, so the last queued call
        always indexes the latest saved content.
        """
        async with self._locks.hold(note_id, wait=wait):
            async with self._session_factory() as session:
                note = await session.get(Note, note_id)
                if note is None:
                    raise DocumentNotFound(f"Note {note_id} not found")
                content = note.content_markdown or ""
                owner_id = note.owner_id
                config = await get_active_embedding_config(session, owner_id)

            ctx = RequestContext(owner_id, config) if config is not None else None
            return await self._reindex_locked(note_id, content, ctx, cancel)

    async def index_user_notes(self, user_id: uuid.UUID) -> BulkIndexResult:
        """Reindex every note the user owns; one failing note never stops the rest."""
        async with self._session_factory() as session:
            stmt = (
                select(Note.id, Note.title)
                .where(
                    Note.owner_id == user_id,
                    Note.content_markdown.is_not(None),  # type: ignore[union-attr]
                )
                .order_by(Note.created_at)
            )
            notes = (await session.execute(stmt)).all()

        logger.info("Indexing %d notes for user %s", len(notes), user_id)
        results = BulkIndexResult(total=len(notes))
        for note_id, title in notes:
            try:
                outcome = await self.reindex_note(note_id)
            except NoteworthyError as exc:
                results.errors += 1
                results.details.append({
                    "note_id": str(note_id),
                    "title": title,
                    "status": IndexStatus.ERROR,
                    "error": exc.message,
                })
                logger.error("Failed to index note %s for user %s: %s", note_id, user_id, exc)
                continue

            if outcome.status == IndexStatus.CLEARED:
                results.skipped += 1
                status = IndexStatus.SKIPPED
            else:
                results.indexed += 1
                status = IndexStatus.INDEXED
            results.details.append({"note_id": str(note_id), "title": title, "status": status})

        logger.info(
            "Completed indexing for user %s: %d indexed, %d skipped, %d errors",
            user_id, results.indexed, results.skipped, results.errors,
        )
        return results

    # ── internals ────────────────────────────────────────────

    async def _reindex_locked(
        self,
        note_id: uuid.UUID,
        content: str,
        ctx: RequestContext | None,
        cancel: CancellationToken | None,
    ) -> IndexResult:
        check_cancelled(cancel)
        chunks = chunk_text(content, chunk_size=self.chunk_size, chunk_overlap=self.chunk_overlap)

        if not chunks:
            await run_to_completion(self._store.clear(note_id))
            logger.info("Note %s has no content, cleared its chunks", note_id)
            return IndexResult(note_id=note_id, chunk_count=0, status=IndexStatus.CLEARED)

        if ctx is None:
            raise ConfigurationMissing(f"No embedding configuration available to index note {note_id}")
        config = ctx.config
        if self._store.dimension is not None and config.dimension != self._store.dimension:
            logger.error(
                "Config %s declares dimension %d but the chunk store holds %d-d vectors",
                config.id, config.dimension, self._store.dimension,
            )
            raise InvalidDimension(self._store.dimension, config.dimension)

        texts = [c.content for c in chunks]
        try:
            vectors = await self._provider_factory(config).embed(texts, cancel=cancel)
        except NoteworthyError as exc:
            logger.error("Embedding failed for note %s, keeping previous chunks: %s", note_id, exc)
            raise

        self._check_dimensions(note_id, config, vectors)

        # Last point where cancellation is honoured; the transaction always finishes
        check_cancelled(cancel)
        await run_to_completion(
            self._store.store(note_id, chunks, vectors, config.model_name)
        )
        logger.info(
            "Indexed note %s: %d chunks (model=%s)", note_id, len(chunks), config.model_name
        )

        await self._usage.record(ctx.principal_id, config, RequestType.EMBEDDING, texts)
        return IndexResult(note_id=note_id, chunk_count=len(chunks), status=IndexStatus.INDEXED)

    def _check_dimensions(
        self,
        note_id: uuid.UUID,
        config: EmbeddingConfig,
        vectors: list[list[float]],
    ) -> None:
        for vector in vectors:
            if len(vector) != config.dimension:
                logger.error(
                    "Embedding dimension mismatch for note %s: expected %d, got %d (model=%s)",
                    note_id, config.dimension, len(vector), config.model_name,
                )
                raise InvalidDimension(config.dimension, len(vector))
