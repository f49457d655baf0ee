"""
TenantNotes Backend — Pydantic Request/Response Schemas (Notes)
================================================================

What:  Pydantic models defining the notes API contract.
Why:   Strict input validation, automatic serialization, and OpenAPI doc generation.

Design Decision:
    Request schemas carry no author field, and NoteUpdate carries no tenant
    field at all: ownership comes from the authenticated principal, never from
    the request body. NoteCreate accepts an optional tenant_id only so that a
    client naming a tenant explicitly gets it checked against its own.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class NoteCreate(BaseModel):
    """Body of POST /api/notes."""

    title: str = Field(min_length=1, max_length=200, description="Note title")
    content: str = Field(default="", max_length=100_000, description="Note body")
    tenant_id: Optional[uuid.UUID] = Field(
        default=None,
        description=(
            "Optional explicit tenant. Must equal the caller's own tenant; "
            "any other value is rejected with reason 'cross-tenant'."
        ),
    )

    model_config = {"extra": "forbid"}

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("title must not be blank")
        return stripped


class NoteUpdate(BaseModel):
    """
    Body of PUT /api/notes/{id}.

    extra="forbid" turns an attempt to send tenant_id or author_id into a 422
    instead of silently ignoring it.
    """

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, max_length=100_000)

    model_config = {"extra": "forbid"}

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        stripped = v.strip()
        if not stripped:
            raise ValueError("title must not be blank")
        return stripped


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class NoteResponse(BaseModel):
    """Full representation of a note."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    author_id: Optional[uuid.UUID] = None
    title: str
    content: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class NoteListItem(BaseModel):
    """
    Compact note representation for list views.

    Preview truncation: first 200 characters of content.
    """

    id: uuid.UUID
    author_id: Optional[uuid.UUID] = None
    title: str
    content_preview: str = Field(description="First 200 characters of content")
    created_at: datetime


class NoteListResponse(BaseModel):
    """
    Paginated response wrapper for GET /api/notes.

    Cursor-based: next_cursor encodes (created_at, id) of the last item on the page.
    """

    notes: List[NoteListItem]
    total_count: int = Field(description="Total notes in the caller's tenant matching filters")
    next_cursor: Optional[str] = Field(default=None, description="Cursor for next page")
    has_more: bool


class PaginationParams(BaseModel):
    """Validated query parameters for note listing."""

    limit: int = Field(default=20, ge=1, le=100)
    cursor: Optional[str] = Field(default=None, description="Pagination cursor (next_cursor of the previous page)")
    sort: str = Field(default="created_at_desc")
    author_id: Optional[uuid.UUID] = Field(default=None, description="Only notes by this author")

    @field_validator("sort")
    @classmethod
    def validate_sort(cls, v: str) -> str:
        valid = {"created_at_desc", "created_at_asc"}
        if v not in valid:
            raise ValueError(f"Invalid sort '{v}'. Must be one of: {valid}")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example (403):
        {
            "error": "access_denied",
            "reason": "plan-limit-exceeded",
            "message": "Your plan's note limit has been reached. Upgrade to add more notes.",
            "request_id": "a1b2c3d4"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    reason: Optional[str] = Field(default=None, description="Deny reason for 403 responses")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
