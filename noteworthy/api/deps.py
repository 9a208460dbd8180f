"""FastAPI dependencies for authentication and engine access."""

import uuid
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from noteworthy.core.database import get_session
from noteworthy.core.security import decode_jwt
from noteworthy.models.user import User
from noteworthy.services.indexer import IndexWriter, ProviderFactory, default_provider_factory
from noteworthy.services.retrieval import RetrievalEngine

bearer_scheme = HTTPBearer()


class AuthContext:
    """Resolved identity carried through a request."""

    __slots__ = ("user_id",)

    def __init__(self, user_id: uuid.UUID) -> None:
        self.user_id = user_id


def _subject(token: str) -> uuid.UUID:
    try:
        payload = decode_jwt(token)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired JWT",
        ) from exc

    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, ValueError, TypeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed JWT payload",
        ) from exc


async def get_auth_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AuthContext:
    """Resolve a bearer JWT to an AuthContext for an active user."""
    user_id = _subject(credentials.credentials)
    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled or unknown",
        )
    return AuthContext(user_id=user_id)


# One writer per process so its per-note locks are shared by every request
@lru_cache
def get_index_writer() -> IndexWriter:
    return IndexWriter()


@lru_cache
def get_retrieval_engine() -> RetrievalEngine:
    return RetrievalEngine()


def get_provider_factory() -> ProviderFactory:
    return default_provider_factory


# Typed shorthand for use in route signatures
Auth = Annotated[AuthContext, Depends(get_auth_context)]
Session = Annotated[AsyncSession, Depends(get_session)]
Writer = Annotated[IndexWriter, Depends(get_index_writer)]
Retrieval = Annotated[RetrievalEngine, Depends(get_retrieval_engine)]
Providers = Annotated[ProviderFactory, Depends(get_provider_factory)]
