"""
TenantNotes Backend — Pydantic Schemas (Tenants and Users)
===========================================================

What:  API contract for tenant usage, plan upgrades and member invitations.
Why:   The client shows plan usage ("2 of 3 notes") and an upgrade prompt;
       admins invite members. Neither request lets the caller choose a
       tenant: invitations land in the inviter's tenant.
"""

import uuid
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field, field_validator

from tenantnotes.services.access_guard import PlanTier, Role


class TenantResponse(BaseModel):
    """GET /api/tenants/me and the result of an upgrade."""

    id: uuid.UUID
    slug: str
    name: str
    plan: PlanTier
    note_limit: int
    note_count: int

    model_config = {"from_attributes": True}


class PlanUpgradeRequest(BaseModel):
    plan: PlanTier = Field(default=PlanTier.PRO, description="Target plan tier")


class UserInvite(BaseModel):
    """Body of POST /api/users/invite."""

    email: str = Field(min_length=3, max_length=320)
    role: Role = Field(default=Role.MEMBER)

    model_config = {"extra": "forbid"}

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Lower-cases the address and checks it has the local@domain shape."""
        email = v.strip().lower()
        local, _, domain = email.partition("@")
        if not local or "." not in domain:
            raise ValueError(f"Invalid email address '{v}'")
        return email


class UserResponse(BaseModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    email: str
    role: Role
    created_at: datetime

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    users: List[UserResponse]
