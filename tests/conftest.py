"""Shared test fixtures — async SQLite in-memory DB, fake providers, test client."""

import asyncio
import hashlib
import os
import uuid
from collections.abc import AsyncGenerator

from cryptography.fernet import Fernet

# Settings are cached on first import; point them at test values first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("VECTOR_BACKEND", "exact")
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

# Import all models so metadata is populated
import noteworthy.models  # noqa: E402, F401
from noteworthy.api.deps import get_index_writer, get_provider_factory, get_retrieval_engine  # noqa: E402
from noteworthy.core.cache import usage_cache  # noqa: E402
from noteworthy.core.database import get_session  # noqa: E402
from noteworthy.core.security import create_jwt, encrypt_value  # noqa: E402
from noteworthy.main import app  # noqa: E402
from noteworthy.models.ai_config import ProviderType, UserAiConfig  # noqa: E402
from noteworthy.models.folder import Folder  # noqa: E402
from noteworthy.models.note import Note  # noqa: E402
from noteworthy.models.permission import AccessLevel, EntityType, Permission  # noqa: E402
from noteworthy.models.user import User  # noqa: E402
from noteworthy.services.embedding import EmbeddingConfig, EmbeddingProvider  # noqa: E402
from noteworthy.services.indexer import IndexWriter, RequestContext  # noqa: E402
from noteworthy.services.retrieval import RetrievalEngine  # noqa: E402
from noteworthy.services.usage import UsageRecorder  # noqa: E402
from noteworthy.services.vector_store import SqlVectorStore  # noqa: E402

DIM = 8


def hashed_vector(text: str, dimension: int = DIM) -> list[float]:
    """Deterministic non-zero pseudo-embedding for a text."""
    digest = hashlib.sha256(text.encode()).digest()
    return [float(b) + 1.0 for b in digest[:dimension]]


class FakeEmbeddingProvider(EmbeddingProvider):
    """In-memory provider: fixed vectors per text, hashed vectors otherwise."""

    def __init__(
        self,
        dimension: int = DIM,
        vectors: dict[str, list[float]] | None = None,
        fail_with: Exception | None = None,
        delay: float = 0.0,
        max_batch_size: int = 128,
    ) -> None:
        super().__init__("fake-embed")
        self.dimension = dimension
        self.vectors = vectors or {}
        self.fail_with = fail_with
        self.delay = delay
        self.max_batch_size = max_batch_size
        self.batches: list[list[str]] = []

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batches.append(list(texts))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return [list(self.vectors.get(t) or hashed_vector(t, self.dimension)) for t in texts]

    @property
    def calls(self) -> int:
        return len(self.batches)


def make_config(dimension: int = DIM, model_name: str = "fake-embed", config_id: str | None = None) -> EmbeddingConfig:
    return EmbeddingConfig(
        id=config_id or str(uuid.uuid4()),
        provider_type=ProviderType.OPENAI,
        model_name=model_name,
        dimension=dimension,
        api_key="sk-test",
    )


# ── Database ─────────────────────────────────────────────────


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


# ── Engine components ────────────────────────────────────────


@pytest.fixture
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def store(test_session_factory) -> SqlVectorStore:
    return SqlVectorStore(test_session_factory)


@pytest.fixture
def usage(test_session_factory) -> UsageRecorder:
    return UsageRecorder(test_session_factory)


@pytest.fixture
def writer(store, test_session_factory, provider, usage) -> IndexWriter:
    return IndexWriter(
        store=store,
        session_factory=test_session_factory,
        provider_factory=lambda _config: provider,
        usage=usage,
        chunk_size=200,
        chunk_overlap=40,
    )


@pytest.fixture
def retrieval(store, test_session_factory, provider, usage) -> RetrievalEngine:
    return RetrievalEngine(
        store=store,
        session_factory=test_session_factory,
        provider_factory=lambda _config: provider,
        usage=usage,
    )


# ── Data factories ───────────────────────────────────────────


async def create_user(session: AsyncSession, email: str | None = None) -> User:
    user = User(email=email or f"{uuid.uuid4().hex[:8]}@example.com", display_name="Test User")
    session.add(user)
    await session.commit()
    return user


async def create_folder(session: AsyncSession, owner: User, name: str = "Folder") -> Folder:
    folder = Folder(owner_id=owner.id, name=name)
    session.add(folder)
    await session.commit()
    return folder


async def create_note(
    session: AsyncSession,
    owner: User,
    content: str | None = "Some note content.",
    title: str = "Note",
    folder: Folder | None = None,
) -> Note:
    note = Note(
        owner_id=owner.id,
        title=title,
        content_markdown=content,
        folder_id=folder.id if folder else None,
    )
    session.add(note)
    await session.commit()
    return note


async def create_ai_config(
    session: AsyncSession,
    user: User,
    dimension: int = DIM,
    is_default: bool = True,
    model: str = "fake-embed",
    api_key: str | None = "sk-test",
) -> UserAiConfig:
    row = UserAiConfig(
        user_id=user.id,
        name="Test config",
        api_provider_type=ProviderType.OPENAI,
        encrypted_api_key=encrypt_value(api_key) if api_key else None,
        models_config=f'{{"embeddingModel": "{model}"}}',
        embedding_dimensions=dimension,
        is_default_embedding=is_default,
    )
    session.add(row)
    await session.commit()
    return row


async def grant(
    session: AsyncSession,
    user: User,
    entity_type: EntityType,
    entity_id: uuid.UUID,
    level: AccessLevel = AccessLevel.VIEW,
) -> Permission:
    permission = Permission(
        user_id=user.id,
        entity_type=entity_type,
        entity_id=entity_id,
        access_level=level,
    )
    session.add(permission)
    await session.commit()
    return permission


def ctx_for(user: User, config: EmbeddingConfig | None = None) -> RequestContext:
    return RequestContext(principal_id=user.id, config=config or make_config())


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_jwt(str(user.id))}"}


# ── HTTP client ──────────────────────────────────────────────


@pytest.fixture
async def client(test_session_factory, writer, retrieval, provider) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB and engine overrides."""

    async def _override_session():
        async with test_session_factory() as sess:
            yield sess

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_index_writer] = lambda: writer
    app.dependency_overrides[get_retrieval_engine] = lambda: retrieval
    app.dependency_overrides[get_provider_factory] = lambda: (lambda _config: provider)
    usage_cache.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    usage_cache.clear()
