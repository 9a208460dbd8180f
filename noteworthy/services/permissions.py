"""Read/edit access checks over notes, folders and explicit grants.

A user can read a note they own, or one covered by a ``view``/``edit``
permission on the note itself or on its folder. Editing needs ownership or an
``edit`` grant.
"""

from __future__ import annotations

import uuid

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from noteworthy.models.note import Note
from noteworthy.models.permission import AccessLevel, EntityType, Permission

_READ_LEVELS = (AccessLevel.VIEW, AccessLevel.EDIT)


async def _has_access(
    session: AsyncSession,
    user_id: uuid.UUID,
    note_id: uuid.UUID,
    levels: tuple[AccessLevel, ...],
) -> bool:
    note = await session.get(Note, note_id)
    if note is None:
        return False
    if note.owner_id == user_id:
        return True

    grants = [
        (Permission.entity_type == EntityType.NOTE) & (Permission.entity_id == note.id),
    ]
    if note.folder_id is not None:
        grants.append(
            (Permission.entity_type == EntityType.FOLDER) & (Permission.entity_id == note.folder_id)
        )
    stmt = (
        select(Permission.id)
        .where(
            Permission.user_id == user_id,
            Permission.access_level.in_(levels),  # type: ignore[attr-defined]
            or_(*grants),
        )
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.first() is not None


async def can_read(session: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID) -> bool:
    return await _has_access(session, user_id, note_id, _READ_LEVELS)


async def can_edit(session: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID) -> bool:
    return await _has_access(session, user_id, note_id, (AccessLevel.EDIT,))


async def readable_note_ids(session: AsyncSession, user_id: uuid.UUID) -> set[uuid.UUID]:
    """Every note id the user may read, for search-time filtering."""
    owned = select(Note.id).where(Note.owner_id == user_id)

    shared_notes = select(Permission.entity_id).where(
        Permission.user_id == user_id,
        Permission.entity_type == EntityType.NOTE,
        Permission.access_level.in_(_READ_LEVELS),  # type: ignore[attr-defined]
    )
    shared_folders = select(Permission.entity_id).where(
        Permission.user_id == user_id,
        Permission.entity_type == EntityType.FOLDER,
        Permission.access_level.in_(_READ_LEVELS),  # type: ignore[attr-defined]
    )
    stmt = select(Note.id).where(
        or_(
            Note.id.in_(owned),  # type: ignore[attr-defined]
            Note.id.in_(shared_notes),  # type: ignore[attr-defined]
            Note.folder_id.in_(shared_folders),  # type: ignore[union-attr]
        )
    )
    result = await session.execute(stmt)
    return set(result.scalars().all())
