"""API tests for per-note indexing endpoints and bulk indexing."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from conftest import (
    FakeEmbeddingProvider,
    auth_headers,
    create_ai_config,
    create_note,
    create_user,
    grant,
)
from noteworthy.api.deps import get_index_writer
from noteworthy.core.concurrency import KeyedLock
from noteworthy.core.errors import ProviderAuthError, ProviderRateLimited
from noteworthy.main import app
from noteworthy.models.permission import AccessLevel, EntityType
from noteworthy.services.indexer import IndexWriter
from noteworthy.services.usage import UsageRecorder

CONTENT = "# Trip\n\nPack the tent.\n\nBook the ferry."


@pytest.mark.asyncio
async def test_queue_reindex_enqueues_job(client: AsyncClient, session):
    user = await create_user(session)
    note = await create_note(session, user, content=CONTENT)
    mock_enqueue = AsyncMock(return_value="job-123")

    with patch("noteworthy.api.v1.notes.enqueue_job", mock_enqueue):
        resp = await client.post(f"/v1/notes/{note.id}/reindex", headers=auth_headers(user))

    assert resp.status_code == 202
    assert resp.json()["job_id"] == "job-123"
    mock_enqueue.assert_awaited_once_with("reindex_note", note_id=str(note.id))


async def test_queue_reindex_requires_edit_access(client: AsyncClient, session):
    owner = await create_user(session)
    viewer = await create_user(session)
    note = await create_note(session, owner, content=CONTENT)
    await grant(session, viewer, EntityType.NOTE, note.id, AccessLevel.VIEW)
    mock_enqueue = AsyncMock()

    with patch("noteworthy.api.v1.notes.enqueue_job", mock_enqueue):
        resp = await client.post(f"/v1/notes/{note.id}/reindex", headers=auth_headers(viewer))

    assert resp.status_code == 403
    mock_enqueue.assert_not_awaited()


async def test_unknown_note_is_404(client: AsyncClient, session):
    user = await create_user(session)
    resp = await client.post(
        "/v1/notes/00000000-0000-0000-0000-000000000000/reindex/sync", headers=auth_headers(user),
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_sync_reindex_then_list_chunks(client: AsyncClient, session):
    user = await create_user(session)
    await create_ai_config(session, user)
    note = await create_note(session, user, content=CONTENT)

    resp = await client.post(f"/v1/notes/{note.id}/reindex/sync", headers=auth_headers(user))
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "indexed"
    assert data["chunk_count"] >= 1

    resp = await client.get(f"/v1/notes/{note.id}/chunks", headers=auth_headers(user))
    assert resp.status_code == 200
    listing = resp.json()
    assert listing["count"] == data["chunk_count"]
    assert "Pack the tent." in " ".join(c["chunk_text"] for c in listing["chunks"])
    assert [c["chunk_index"] for c in listing["chunks"]] == list(range(listing["count"]))


async def test_chunks_need_read_access(client: AsyncClient, session):
    owner = await create_user(session)
    stranger = await create_user(session)
    note = await create_note(session, owner, content=CONTENT)

    resp = await client.get(f"/v1/notes/{note.id}/chunks", headers=auth_headers(stranger))
    assert resp.status_code == 403


async def test_sync_reindex_conflicts_with_running_reindex(
    client: AsyncClient, session, test_session_factory, store,
):
    user = await create_user(session)
    await create_ai_config(session, user)
    note = await create_note(session, user, content=CONTENT)
    locks = KeyedLock()
    writer = IndexWriter(
        store=store,
        session_factory=test_session_factory,
        provider_factory=lambda _config: FakeEmbeddingProvider(),
        locks=locks,
        usage=UsageRecorder(test_session_factory),
    )
    app.dependency_overrides[get_index_writer] = lambda: writer

    async with locks.hold(note.id):
        resp = await client.post(f"/v1/notes/{note.id}/reindex/sync", headers=auth_headers(user))

    assert resp.status_code == 409
    assert resp.json()["error"] == "ReindexInProgress"


async def test_rate_limit_maps_to_503_with_retry_after(client: AsyncClient, session, provider):
    user = await create_user(session)
    await create_ai_config(session, user)
    note = await create_note(session, user, content=CONTENT)
    provider.fail_with = ProviderRateLimited("slow down", retry_after=2.5)

    resp = await client.post(f"/v1/notes/{note.id}/reindex/sync", headers=auth_headers(user))

    assert resp.status_code == 503
    assert resp.headers["Retry-After"] == "3"
    assert resp.json()["error"] == "ProviderRateLimited"


async def test_provider_auth_failure_maps_to_502(client: AsyncClient, session, provider):
    user = await create_user(session)
    await create_ai_config(session, user)
    note = await create_note(session, user, content=CONTENT)
    provider.fail_with = ProviderAuthError("invalid api key")

    resp = await client.post(f"/v1/notes/{note.id}/reindex/sync", headers=auth_headers(user))

    assert resp.status_code == 502
    assert resp.json()["detail"] == "invalid api key"


# ── Bulk indexing ────────────────────────────────────────────


async def test_index_notes_enqueues_user_job(client: AsyncClient, session):
    user = await create_user(session)
    await create_ai_config(session, user)
    mock_enqueue = AsyncMock(return_value="job-9")

    with patch("noteworthy.api.v1.ai_index.enqueue_job", mock_enqueue):
        resp = await client.post("/v1/ai/index-notes", headers=auth_headers(user))

    assert resp.status_code == 202
    mock_enqueue.assert_awaited_once_with("index_user_notes", user_id=str(user.id))


async def test_index_notes_without_config_is_conflict(client: AsyncClient, session):
    user = await create_user(session)
    with patch("noteworthy.api.v1.ai_index.enqueue_job", AsyncMock()) as mock_enqueue:
        resp = await client.post("/v1/ai/index-notes", headers=auth_headers(user))

    assert resp.status_code == 409
    mock_enqueue.assert_not_awaited()
