"""
TenantNotes Backend — Note SQLAlchemy Model
============================================

What:  ORM model representing the `notes` table.
Why:   Notes are the tenant-owned records of the application.
How:   Inherits from SQLAlchemy's DeclarativeBase; Alembic reads this for migrations.
Who:   Queried only by NoteService, and only through access_guard.scope_query.

Table Design Rationale:
    - tenant_id: the isolation key. Set from the creating principal and never
      written again; every query filters on it, hence the composite index
      (tenant_id, created_at) that also serves the default "newest first" list.
    - author_id: the creating user; used for the delete-someone-else's-note rule.
      Nullable with ON DELETE SET NULL so removing a user keeps the tenant's notes.
    - created_at / updated_at: UTC with timezone.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from tenantnotes.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Note(Base):
    """
    A note owned by one tenant.

    Query Patterns:
        - List a tenant's notes: WHERE tenant_id = :t ORDER BY created_at DESC
          → idx_notes_tenant_created_at
        - Get single note: WHERE id = :uuid AND tenant_id = :t
          → primary key
    """

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_notes_tenant_created_at", "tenant_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, tenant_id={self.tenant_id}, title='{self.title}')>"
