"""
TenantNotes Backend — Note Service
===================================

What:  Tenant-scoped CRUD for notes.
Why:   This is the only code that reads or writes the `notes` table. Every
       method takes the caller's Principal and goes through the access guard,
       so a route handler cannot forget the tenant filter.
How:   Reads go through `scope_query`; a note of another tenant is therefore
       "not found" rather than "forbidden", which also keeps its existence
       hidden. Loaded notes are then passed to `enforce` as the target, which
       applies the role rules (and re-checks the tenant).
Who:   Called by the notes route handlers.

Create Flow (POST /api/notes):
    ┌───────────┐   ┌───────────────┐   ┌─────────────────┐   ┌──────────┐
    │ get_usage │──▶│ enforce       │──▶│ reserve slot    │──▶│ insert   │
    │ (count,   │   │ (fast reject) │   │ (atomic UPDATE) │   │ note     │
    │  limit)   │   └───────────────┘   └─────────────────┘   └──────────┘
    All four steps share the request's transaction.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, asc, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantnotes.exceptions import DatabaseError, NotFoundError, TenantNotesError
from tenantnotes.models.note import Note
from tenantnotes.schemas.note import (
    NoteCreate,
    NoteListItem,
    NoteListResponse,
    NoteResponse,
    NoteUpdate,
)
from tenantnotes.services.access_guard import (
    OperationKind,
    Principal,
    Target,
    enforce,
    scope_query,
)
from tenantnotes.services.tenant_service import tenant_service

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200

# Cursor format: "<created_at ISO>|<note uuid>", the sort key of the last row
_CURSOR_SEPARATOR = "|"


def _target_for(note: Note) -> Target:
    return Target(tenant_id=note.tenant_id, record_id=note.id, owner_id=note.author_id)


def _encode_cursor(note: Note) -> str:
    return f"{note.created_at.isoformat()}{_CURSOR_SEPARATOR}{note.id}"


def _decode_cursor(cursor: str) -> Optional[Tuple[datetime, UUID]]:
    """Returns (created_at, id), or None for a cursor this service did not issue."""
    created_at, sep, note_id = cursor.rpartition(_CURSOR_SEPARATOR)
    if not sep:
        return None
    try:
        return datetime.fromisoformat(created_at), UUID(note_id)
    except ValueError:
        return None


class NoteService:
    """
    Business logic layer for note operations.

    Error Handling Strategy:
        Application exceptions (AccessDeniedError, NotFoundError, ...) propagate
        unchanged. Anything else raised by the database is logged and wrapped in
        DatabaseError so the client never sees SQL details.
    """

    async def create_note(
        self,
        db: AsyncSession,
        principal: Principal,
        payload: NoteCreate,
    ) -> NoteResponse:
        """
        Create a note in the caller's tenant.

        If the payload names a tenant explicitly, that tenant is the target
        of the check; naming any tenant but your own is a cross-tenant DENY.
        The stored tenant_id and author_id always come from the principal.

        Raises:
            AccessDeniedError: cross-tenant or plan-limit-exceeded
            DatabaseError: insert failed
        """
        target_tenant = payload.tenant_id if payload.tenant_id is not None else principal.tenant_id
        try:
            usage = await tenant_service.get_usage(db, principal.tenant_id)
            enforce(principal, OperationKind.CREATE, Target(tenant_id=target_tenant), usage)

            await tenant_service.reserve_note_slot(db, principal.tenant_id, principal)

            note = Note(
                tenant_id=principal.tenant_id,
                author_id=principal.id,
                title=payload.title,
                content=payload.content,
            )
            db.add(note)
            await db.flush()
            await db.refresh(note)
            logger.info(
                "Note %s created in tenant %s (%d/%d)",
                note.id,
                principal.tenant_id,
                usage.count + 1,
                usage.limit,
            )
            return NoteResponse.model_validate(note)

        except TenantNotesError:
            raise
        except Exception as e:
            logger.error("Unexpected error in create_note: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="An error occurred while saving your note. Please try again.",
                context={"original_error": type(e).__name__},
            )

    async def _load(self, db: AsyncSession, principal: Principal, note_id: UUID) -> Note:
        query = scope_query(principal, select(Note).where(Note.id == note_id), Note)
        result = await db.execute(query)
        note = result.scalar_one_or_none()
        if note is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        return note

    async def get_note(self, db: AsyncSession, principal: Principal, note_id: UUID) -> NoteResponse:
        """
        Retrieve a single note of the caller's tenant.

        Raises:
            NotFoundError: no such note in the caller's tenant (→ 404)
            DatabaseError: query execution failed (→ 500)
        """
        try:
            note = await self._load(db, principal, note_id)
            enforce(principal, OperationKind.READ, _target_for(note))
            return NoteResponse.model_validate(note)
        except TenantNotesError:
            raise
        except Exception as e:
            logger.error("Database error fetching note %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the note. Please try again.",
                context={"note_id": str(note_id)},
            )

    async def update_note(
        self,
        db: AsyncSession,
        principal: Principal,
        note_id: UUID,
        payload: NoteUpdate,
    ) -> NoteResponse:
        """Change title and/or content. Tenant and author are not updatable."""
        try:
            note = await self._load(db, principal, note_id)
            enforce(principal, OperationKind.UPDATE, _target_for(note))

            changes = payload.model_dump(exclude_unset=True, exclude_none=True)
            for field, value in changes.items():
                setattr(note, field, value)
            if changes:
                await db.flush()
                await db.refresh(note)
                logger.info("Note %s updated (%s)", note.id, ", ".join(sorted(changes)))
            return NoteResponse.model_validate(note)

        except TenantNotesError:
            raise
        except Exception as e:
            logger.error("Database error updating note %s: %s", note_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not update the note. Please try again.",
                context={"note_id": str(note_id)},
            )

    async def delete_note(self, db: AsyncSession, principal: Principal, note_id: UUID) -> None:
        """
        Delete a note and give its plan slot back.

        Members may delete their own notes; deleting someone else's note
        needs an admin.
        """
        try:
            note = await self._load(db, principal, note_id)
            enforce(principal, OperationKind.DELETE, _target_for(note))

            await db.delete(note)
            await db.flush()
            await tenant_service.release_note_slot(db, principal.tenant_id)
            logger.info("Note %s deleted from tenant %s by %s", note_id, principal.tenant_id, principal.id)

        except TenantNotesError:
            raise
        except Exception as e:
            logger.error("Database error deleting note %s: %s", note_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not delete the note. Please try again.",
                context={"note_id": str(note_id)},
            )

    async def list_notes(
        self,
        db: AsyncSession,
        principal: Principal,
        limit: int = 20,
        cursor: Optional[str] = None,
        sort: str = "created_at_desc",
        author_id: Optional[UUID] = None,
    ) -> NoteListResponse:
        """
        List the caller's tenant's notes with cursor-based pagination.

        Both the page query and the count query are tenant-scoped.
        Cursor: (created_at, id) of the last item, the same key the page is
        ordered by, so notes sharing a timestamp are not skipped. An
        unparseable cursor starts from the beginning.
        """
        enforce(principal, OperationKind.LIST)
        try:
            query = scope_query(principal, select(Note), Note)
            count_query = scope_query(principal, select(func.count(Note.id)), Note)

            if author_id is not None:
                query = query.where(Note.author_id == author_id)
                count_query = count_query.where(Note.author_id == author_id)

            position = _decode_cursor(cursor) if cursor else None
            if position is not None:
                cursor_dt, cursor_id = position
                if sort == "created_at_desc":
                    query = query.where(
                        or_(
                            Note.created_at < cursor_dt,
                            and_(Note.created_at == cursor_dt, Note.id < cursor_id),
                        )
                    )
                else:
                    query = query.where(
                        or_(
                            Note.created_at > cursor_dt,
                            and_(Note.created_at == cursor_dt, Note.id > cursor_id),
                        )
                    )

            if sort == "created_at_asc":
                query = query.order_by(asc(Note.created_at), asc(Note.id))
            else:
                query = query.order_by(desc(Note.created_at), desc(Note.id))

            # One extra row tells us whether another page exists
            query = query.limit(limit + 1)

            result = await db.execute(query)
            notes: List[Note] = list(result.scalars().all())

            count_result = await db.execute(count_query)
            total_count = count_result.scalar() or 0

            has_more = len(notes) > limit
            if has_more:
                notes = notes[:limit]

            next_cursor = None
            if has_more and notes:
                next_cursor = _encode_cursor(notes[-1])

            return NoteListResponse(
                notes=[
                    NoteListItem(
                        id=note.id,
                        author_id=note.author_id,
                        title=note.title,
                        content_preview=(note.content or "")[:PREVIEW_LENGTH],
                        created_at=note.created_at,
                    )
                    for note in notes
                ],
                total_count=total_count,
                next_cursor=next_cursor,
                has_more=has_more,
            )

        except TenantNotesError:
            raise
        except Exception as e:
            logger.error("Database error listing notes: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve notes. Please try again.",
                context={"error_type": type(e).__name__},
            )


# ── Singleton Instance ────────────────────────────────────────────────────
note_service = NoteService()
