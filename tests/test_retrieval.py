"""Tests for permission-scoped semantic search."""

import uuid

import pytest
from sqlmodel import select

from conftest import (
    DIM,
    FakeEmbeddingProvider,
    create_ai_config,
    create_folder,
    create_note,
    create_user,
    grant,
)
from noteworthy.core.errors import ConfigurationMissing, InvalidDimension
from noteworthy.models.permission import AccessLevel, EntityType
from noteworthy.models.usage_log import AiUsageLog, RequestType
from noteworthy.services.indexer import IndexWriter
from noteworthy.services.retrieval import RetrievalEngine, candidate_pool_size
from noteworthy.services.usage import UsageRecorder
from noteworthy.services.vector_store import ScoredChunk


def _vec(*head: float) -> list[float]:
    return list(head) + [0.0] * (DIM - len(head))


QUERY = _vec(1.0, 0.0)
# cosine distances 0.1, 0.4 and 0.8 from QUERY
NEAR = _vec(0.9, 0.19 ** 0.5)
MIDDLE = _vec(0.6, 0.8)
FAR = _vec(0.2, 0.96 ** 0.5)


@pytest.fixture
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider(vectors={
        "query": QUERY,
        "near note": NEAR,
        "middle note": MIDDLE,
        "far note": FAR,
        "secret note": QUERY,
    })


class RecordingStore:
    """Returns fixed candidates and remembers what it was asked."""

    dimension = None

    def __init__(self, candidates: list[ScoredChunk]) -> None:
        self.candidates = candidates
        self.calls: list[tuple] = []

    async def query(self, query_vector, candidate_filter, k):
        self.calls.append((candidate_filter, k))
        allowed = candidate_filter.note_ids
        hits = [c for c in self.candidates if allowed is None or c.note_id in allowed]
        return sorted(hits, key=lambda c: c.distance)[:k]


def _scored(note_id: uuid.UUID, text: str, distance: float) -> ScoredChunk:
    return ScoredChunk(chunk_id=uuid.uuid4(), note_id=note_id, chunk_index=0, chunk_text=text, distance=distance)


async def _index(writer: IndexWriter, note) -> None:
    await writer.reindex_note(note.id)


# ── End-to-end over the SQLite store ─────────────────────────


async def test_ranking_example_returns_two_closest(session, writer, retrieval):
    user = await create_user(session)
    await create_ai_config(session, user)
    near = await create_note(session, user, content="near note")
    middle = await create_note(session, user, content="middle note")
    far = await create_note(session, user, content="far note")
    for note in (near, middle, far):
        await _index(writer, note)

    hits = await retrieval.semantic_search(user.id, "query", k=2, threshold=0.5)

    assert [h.note_id for h in hits] == [near.id, middle.id]
    assert hits[0].score == pytest.approx(0.9)
    assert hits[1].score == pytest.approx(0.6)
    assert hits[0].chunk_text == "near note"


async def test_threshold_drops_weak_matches(session, writer, retrieval):
    user = await create_user(session)
    await create_ai_config(session, user)
    for content in ("near note", "middle note", "far note"):
        await _index(writer, await create_note(session, user, content=content))

    hits = await retrieval.semantic_search(user.id, "query", k=10, threshold=0.7)
    assert [h.chunk_text for h in hits] == ["near note"]


async def test_unreadable_notes_never_surface(session, writer, retrieval):
    me = await create_user(session)
    owner = await create_user(session)
    await create_ai_config(session, me)
    await create_ai_config(session, owner)
    mine = await create_note(session, me, content="far note")
    secret = await create_note(session, owner, content="secret note")
    await _index(writer, mine)
    await _index(writer, secret)

    hits = await retrieval.semantic_search(me.id, "query", k=10, threshold=0.0)

    assert secret.id not in {h.note_id for h in hits}
    assert [h.note_id for h in hits] == [mine.id]


async def test_note_grant_makes_note_searchable(session, writer, retrieval):
    me = await create_user(session)
    owner = await create_user(session)
    await create_ai_config(session, me)
    await create_ai_config(session, owner)
    secret = await create_note(session, owner, content="secret note")
    await _index(writer, secret)
    await grant(session, me, EntityType.NOTE, secret.id, AccessLevel.VIEW)

    hits = await retrieval.semantic_search(me.id, "query", k=10, threshold=0.5)
    assert [h.note_id for h in hits] == [secret.id]


async def test_folder_grant_makes_contained_notes_searchable(session, writer, retrieval):
    me = await create_user(session)
    owner = await create_user(session)
    await create_ai_config(session, me)
    await create_ai_config(session, owner)
    folder = await create_folder(session, owner)
    shared = await create_note(session, owner, content="secret note", folder=folder)
    await _index(writer, shared)
    await grant(session, me, EntityType.FOLDER, folder.id, AccessLevel.EDIT)

    hits = await retrieval.semantic_search(me.id, "query", k=10, threshold=0.5)
    assert [h.note_id for h in hits] == [shared.id]


async def test_search_records_usage(session, writer, retrieval):
    user = await create_user(session)
    await create_ai_config(session, user)

    await retrieval.semantic_search(user.id, "query")

    rows = (await session.execute(
        select(AiUsageLog).where(AiUsageLog.request_type == RequestType.SEARCH)
    )).scalars().all()
    assert len(rows) == 1
    assert rows[0].input_tokens == 2  # ceil(5 / 4)


# ── Aggregation and candidate handling ───────────────────────


def _engine(test_session_factory, store, provider) -> RetrievalEngine:
    return RetrievalEngine(
        store=store,
        session_factory=test_session_factory,
        provider_factory=lambda _config: provider,
        usage=UsageRecorder(test_session_factory),
    )


async def test_best_chunk_per_note_wins(session, test_session_factory, provider):
    user = await create_user(session)
    await create_ai_config(session, user)
    a = await create_note(session, user)
    b = await create_note(session, user)
    store = RecordingStore([
        _scored(a.id, "a weak", 0.3),
        _scored(a.id, "a strong", 0.05),
        _scored(b.id, "b only", 0.2),
    ])

    hits = await _engine(test_session_factory, store, provider).semantic_search(
        user.id, "query", k=10, threshold=0.5,
    )

    assert [(h.note_id, h.chunk_text) for h in hits] == [(a.id, "a strong"), (b.id, "b only")]


async def test_ties_are_broken_by_note_id(session, test_session_factory, provider):
    user = await create_user(session)
    await create_ai_config(session, user)
    n1 = await create_note(session, user)
    n2 = await create_note(session, user)
    store = RecordingStore([_scored(n1.id, "one", 0.2), _scored(n2.id, "two", 0.2)])

    hits = await _engine(test_session_factory, store, provider).semantic_search(
        user.id, "query", k=10, threshold=0.0,
    )
    assert [h.note_id for h in hits] == sorted([n1.id, n2.id], key=str)


async def test_store_query_is_scoped_and_oversampled(session, test_session_factory, provider):
    user = await create_user(session)
    await create_ai_config(session, user, model="text-embedding-3-small")
    note = await create_note(session, user)
    store = RecordingStore([])

    engine = _engine(test_session_factory, store, provider)
    await engine.semantic_search(user.id, "query", k=2)
    await engine.semantic_search(user.id, "query", k=20)

    (first_filter, first_k), (_, second_k) = store.calls
    assert first_filter.note_ids == frozenset({note.id})
    assert first_filter.embedding_model == "text-embedding-3-small"
    assert (first_k, second_k) == (50, 80)


def test_candidate_pool_size():
    assert candidate_pool_size(1) == 50
    assert candidate_pool_size(12) == 50
    assert candidate_pool_size(13) == 52


async def test_no_readable_notes_skips_store(session, test_session_factory, provider):
    user = await create_user(session)
    await create_ai_config(session, user)
    store = RecordingStore([])

    hits = await _engine(test_session_factory, store, provider).semantic_search(user.id, "query")
    assert hits == []
    assert store.calls == []


# ── Argument handling ────────────────────────────────────────


async def test_blank_query_returns_nothing(session, retrieval, provider):
    user = await create_user(session)
    await create_ai_config(session, user)
    assert await retrieval.semantic_search(user.id, "   ") == []
    assert provider.calls == 0


async def test_blank_query_still_needs_a_config(session, retrieval):
    user = await create_user(session)
    with pytest.raises(ConfigurationMissing):
        await retrieval.semantic_search(user.id, "   ")


async def test_k_must_be_positive(session, retrieval):
    user = await create_user(session)
    with pytest.raises(ValueError):
        await retrieval.semantic_search(user.id, "query", k=0)


async def test_missing_config_raises(session, retrieval):
    user = await create_user(session)
    with pytest.raises(ConfigurationMissing):
        await retrieval.semantic_search(user.id, "query")


async def test_query_dimension_mismatch_raises(session, test_session_factory, store):
    user = await create_user(session)
    await create_ai_config(session, user, dimension=DIM)
    await create_note(session, user)
    wrong_width = FakeEmbeddingProvider(dimension=4)

    with pytest.raises(InvalidDimension):
        await _engine(test_session_factory, store, wrong_width).semantic_search(
            user.id, "query", threshold=-1.0,
        )

    usage_rows = (await session.execute(select(AiUsageLog))).scalars().all()
    assert usage_rows == []


async def test_note_ids_narrow_but_never_widen(session, test_session_factory, provider):
    user = await create_user(session)
    other = await create_user(session)
    await create_ai_config(session, user)
    mine = await create_note(session, user)
    also_mine = await create_note(session, user)
    foreign = await create_note(session, other)
    store = RecordingStore([])

    await _engine(test_session_factory, store, provider).semantic_search(
        user.id, "query", note_ids=[mine.id, foreign.id],
    )

    (candidate_filter, _), = store.calls
    assert candidate_filter.note_ids == frozenset({mine.id})
    assert also_mine.id not in candidate_filter.note_ids
