"""
TenantNotes Backend — Tenant and User SQLAlchemy Models
========================================================

What:  ORM models for the `tenants` and `users` tables.
Why:   A tenant is the isolation boundary; a user is the principal that acts
       inside exactly one tenant.
Who:   TenantService (provisioning, plan changes, invitations) and the auth
       dependency (building a Principal from a user row).

Table Design Rationale:
    - tenants.note_limit is copied from configuration whenever the plan is set,
      so the database can enforce it in a single conditional UPDATE.
    - tenants.note_count is maintained only by TenantService.reserve_note_slot /
      release_note_slot. The conditional UPDATE keeps it at or below
      note_limit under concurrency; a CHECK constraint keeps it non-negative.
    - users.tenant_id has no update path anywhere in the application.
"""

import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenantnotes.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tenant(Base):
    """A customer account owning a disjoint set of users and notes."""

    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # URL-safe handle used in routes such as /api/tenants/{slug}/upgrade
    slug: Mapped[str] = mapped_column(String(63), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # 'free' | 'pro'
    plan: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="free",
        server_default=text("'free'"),
    )
    note_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    note_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    users: Mapped[List["User"]] = relationship(
        back_populates="tenant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("plan IN ('free', 'pro')", name="ck_tenants_plan"),
        CheckConstraint("note_count >= 0", name="ck_tenants_note_count_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Tenant(slug='{self.slug}', plan='{self.plan}', "
            f"notes={self.note_count}/{self.note_limit})>"
        )


class User(Base):
    """A member of exactly one tenant. Backs the Principal of every request."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)

    # 'admin' | 'member'
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="member",
        server_default=text("'member'"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    tenant: Mapped[Tenant] = relationship(back_populates="users")

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'member')", name="ck_users_role"),
    )

    def __repr__(self) -> str:
        return f"<User(email='{self.email}', role='{self.role}', tenant_id={self.tenant_id})>"
