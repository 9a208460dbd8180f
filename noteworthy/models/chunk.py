"""NoteChunk model — one embedded span of a note's content."""

import uuid
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, Text
from sqlalchemy.types import TypeDecorator
from sqlmodel import Column, Field, SQLModel

from noteworthy.core.config import get_settings
from noteworthy.models.base import new_uuid, utcnow


class EmbeddingVector(TypeDecorator):
    """pgvector ``vector(n)`` on PostgreSQL, a JSON float array everywhere else."""

    impl = JSON
    cache_ok = True

    def __init__(self, dimensions: int | None = None) -> None:
        super().__init__()
        self.dimensions = dimensions

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Vector(self.dimensions))
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return [float(x) for x in value]

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return [float(x) for x in value]


class NoteChunk(SQLModel, table=True):
    __tablename__ = "note_chunks"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    note_id: uuid.UUID = Field(foreign_key="notes.id", nullable=False, index=True)

    # Position within the note
    chunk_index: int = Field(nullable=False)
    chunk_text: str = Field(sa_column=Column(Text, nullable=False))

    embedding: list[float] = Field(
        sa_column=Column(EmbeddingVector(get_settings().embedding_dimensions), nullable=False)
    )
    # Vectors from different models live in different spaces; searches filter on this
    embedding_model: str = Field(max_length=200, nullable=False, index=True)
    dimensions: int = Field(nullable=False)

    created_at: datetime = Field(default_factory=utcnow, nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────

class NoteChunkRead(SQLModel):
    id: uuid.UUID
    note_id: uuid.UUID
    chunk_index: int
    chunk_text: str
    embedding_model: str
    dimensions: int
    created_at: datetime
