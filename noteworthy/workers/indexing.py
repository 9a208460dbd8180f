"""Indexing worker tasks — rebuild note chunk sets in the background."""

from __future__ import annotations

import logging
import uuid

from noteworthy.core.errors import NoteworthyError
from noteworthy.services.indexer import IndexWriter

logger = logging.getLogger(__name__)


def _writer(ctx: dict) -> IndexWriter:
    writer = ctx.get("index_writer")
    if writer is None:
        writer = ctx["index_writer"] = IndexWriter()
    return writer


async def reindex_note(ctx: dict, note_id: str) -> dict:
    """ARQ task: reindex one note with its owner's active embedding config.

    Args:
        ctx: ARQ worker context, holding the shared ``IndexWriter``.
        note_id: UUID of the note to reindex.

    Returns:
        dict with note_id, status and chunk_count, or an ``error`` key.
    """
    try:
        result = await _writer(ctx).reindex_note(uuid.UUID(note_id))
    except NoteworthyError as exc:
        logger.error("Reindex failed for note %s: %s", note_id, exc)
        return {"note_id": note_id, "error": exc.message}

    return {
        "note_id": note_id,
        "status": str(result.status),
        "chunk_count": result.chunk_count,
    }


async def index_user_notes(ctx: dict, user_id: str) -> dict:
    """ARQ task: reindex every note owned by a user."""
    results = await _writer(ctx).index_user_notes(uuid.UUID(user_id))
    return {
        "user_id": user_id,
        "total": results.total,
        "indexed": results.indexed,
        "skipped": results.skipped,
        "errors": results.errors,
        "details": [{**d, "status": str(d["status"])} for d in results.details],
    }
