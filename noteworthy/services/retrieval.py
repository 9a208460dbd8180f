"""Semantic search over indexed note chunks, scoped to what the caller can read."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from noteworthy.core.config import get_settings
from noteworthy.core.database import async_session_factory
from noteworthy.core.errors import ConfigurationMissing, InvalidDimension
from noteworthy.models.usage_log import RequestType
from noteworthy.services.ai_config import get_active_embedding_config
from noteworthy.services.indexer import ProviderFactory, default_provider_factory
from noteworthy.services.permissions import readable_note_ids
from noteworthy.services.usage import UsageRecorder
from noteworthy.services.vector_store import ChunkFilter, SqlVectorStore, get_vector_store

logger = logging.getLogger(__name__)

# Candidate pool floor; several chunks of one note may crowd the top of the list
MIN_CANDIDATES = 50


@dataclass
class SearchHit:
    note_id: uuid.UUID
    chunk_text: str
    score: float


def candidate_pool_size(k: int) -> int:
    return max(k * 4, MIN_CANDIDATES)


class RetrievalEngine:
    def __init__(
        self,
        store: SqlVectorStore | None = None,
        session_factory=None,
        provider_factory: ProviderFactory | None = None,
        usage: UsageRecorder | None = None,
    ) -> None:
        self._session_factory = session_factory or async_session_factory
        self._store = store if store is not None else get_vector_store(self._session_factory)
        self._provider_factory = provider_factory or default_provider_factory
        self._usage = usage or UsageRecorder(self._session_factory)

    async def semantic_search(
        self,
        principal_id: uuid.UUID,
        query_text: str,
        k: int | None = None,
        threshold: float | None = None,
        note_ids: Iterable[uuid.UUID] | None = None,
    ) -> list[SearchHit]:
        """Rank the caller's readable notes by their best-matching chunk.

        Returns at most ``k`` hits, one per note, with ``score >= threshold``,
        ordered by score descending (ties broken by note id). ``note_ids``
        narrows the search to those notes; it never widens what the caller
        can read.
        """
        settings = get_settings()
        k = settings.search_default_k if k is None else k
        threshold = settings.search_default_threshold if threshold is None else threshold
        if k < 1:
            raise ValueError("k must be at least 1")

        async with self._session_factory() as session:
            config = await get_active_embedding_config(session, principal_id)
            if config is None:
                raise ConfigurationMissing("No embedding configuration found for semantic search")
            if not query_text or not query_text.strip():
                return []
            readable = await readable_note_ids(session, principal_id)

        if note_ids is not None:
            readable &= set(note_ids)

        query_vector = await self._provider_factory(config).embed_query(query_text)
        if len(query_vector) != config.dimension:
            logger.error(
                "Query embedding dimension mismatch for user %s: expected %d, got %d (model=%s)",
                principal_id, config.dimension, len(query_vector), config.model_name,
            )
            raise InvalidDimension(config.dimension, len(query_vector))
        await self._usage.record(principal_id, config, RequestType.SEARCH, [query_text])

        if not readable:
            return []

        candidates = await self._store.query(
            query_vector,
            ChunkFilter(note_ids=frozenset(readable), embedding_model=config.model_name),
            candidate_pool_size(k),
        )

        best: dict[uuid.UUID, SearchHit] = {}
        for candidate in candidates:
            score = 1.0 - candidate.distance
            if score < threshold:
                continue
            current = best.get(candidate.note_id)
            if current is None or score > current.score:
                best[candidate.note_id] = SearchHit(
                    note_id=candidate.note_id,
                    chunk_text=candidate.chunk_text,
                    score=score,
                )

        hits = sorted(best.values(), key=lambda h: (-h.score, str(h.note_id)))[:k]
        logger.debug(
            "Semantic search for user %s: %d candidates, %d hits", principal_id, len(candidates), len(hits)
        )
        return hits
