"""
TenantNotes Backend — Notes Route Handlers
===========================================

What:  CRUD endpoints for notes under /api/notes.
Why:   The React client's note list, editor and detail views.
How:   Resolves the caller with get_current_principal and hands it to
       NoteService together with the request data. Handlers never build
       queries themselves; tenant scoping happens inside the service.

Error mapping (see main.register_exception_handlers):
    AccessDeniedError → 403 with "reason"
    NotFoundError     → 404 (also for notes of other tenants)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from tenantnotes.database import get_db_session
from tenantnotes.schemas.note import (
    ErrorResponse,
    NoteCreate,
    NoteListResponse,
    NoteResponse,
    NoteUpdate,
)
from tenantnotes.security import get_current_principal
from tenantnotes.services.access_guard import Principal
from tenantnotes.services.note_service import note_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Notes"])

_DENIED = {"description": "Access denied", "model": ErrorResponse}
_NOT_FOUND = {"description": "Note not found", "model": ErrorResponse}


@router.post(
    "/notes",
    response_model=NoteResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: _DENIED},
    summary="Create a note in the caller's tenant",
)
async def create_note(
    payload: NoteCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    """
    Create a note.

    403 reasons:
        plan-limit-exceeded: the tenant's plan is full; the client shows
            an upgrade prompt
        cross-tenant: the body named a tenant other than the caller's
    """
    return await note_service.create_note(db=db, principal=principal, payload=payload)


@router.get(
    "/notes",
    response_model=NoteListResponse,
    summary="List the tenant's notes with pagination",
)
async def list_notes(
    response: Response,
    limit: int = Query(default=20, ge=1, le=100, description="Items per page (max 100)"),
    cursor: str | None = Query(
        default=None,
        description="Pagination cursor (next_cursor of the previous page). Omit for the first page.",
    ),
    sort: str = Query(
        default="created_at_desc",
        pattern="^created_at_(asc|desc)$",
        description="'created_at_desc' (newest first) or 'created_at_asc'",
    ),
    author_id: UUID | None = Query(default=None, description="Only notes written by this user"),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> NoteListResponse:
    """List notes. X-Total-Count carries the total for "showing 1-20 of N" UIs."""
    result = await note_service.list_notes(
        db=db,
        principal=principal,
        limit=limit,
        cursor=cursor,
        sort=sort,
        author_id=author_id,
    )
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get(
    "/notes/{note_id}",
    response_model=NoteResponse,
    responses={404: _NOT_FOUND},
    summary="Get a single note by ID",
)
async def get_note(
    note_id: UUID,
    response: Response,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    result = await note_service.get_note(db=db, principal=principal, note_id=note_id)
    # Notes are editable and tenant-private: never let a shared cache keep them
    response.headers["Cache-Control"] = "private, no-cache"
    return result


@router.put(
    "/notes/{note_id}",
    response_model=NoteResponse,
    responses={403: _DENIED, 404: _NOT_FOUND},
    summary="Update a note's title or content",
)
async def update_note(
    note_id: UUID,
    payload: NoteUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await note_service.update_note(db=db, principal=principal, note_id=note_id, payload=payload)


@router.delete(
    "/notes/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={403: _DENIED, 404: _NOT_FOUND},
    summary="Delete a note",
)
async def delete_note(
    note_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    """Members may delete their own notes; admins may delete any note of their tenant."""
    await note_service.delete_note(db=db, principal=principal, note_id=note_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
