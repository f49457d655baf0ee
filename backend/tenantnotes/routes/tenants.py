"""
TenantNotes Backend — Tenant and Member Route Handlers
=======================================================

What:  GET /api/tenants/me, POST /api/tenants/{slug}/upgrade,
       GET /api/users, POST /api/users/invite.
Why:   Plan usage display, the upgrade action, and member management for
       tenant admins.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tenantnotes.database import get_db_session
from tenantnotes.schemas.note import ErrorResponse
from tenantnotes.schemas.tenant import (
    PlanUpgradeRequest,
    TenantResponse,
    UserInvite,
    UserListResponse,
    UserResponse,
)
from tenantnotes.security import get_current_principal
from tenantnotes.services.access_guard import Principal
from tenantnotes.services.tenant_service import tenant_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Tenants"])

_DENIED = {"description": "Access denied", "model": ErrorResponse}


@router.get(
    "/tenants/me",
    response_model=TenantResponse,
    summary="The caller's tenant with plan usage",
)
async def get_my_tenant(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> TenantResponse:
    tenant = await tenant_service.get_tenant(db=db, principal=principal)
    return TenantResponse.model_validate(tenant)


@router.post(
    "/tenants/{slug}/upgrade",
    response_model=TenantResponse,
    responses={403: _DENIED, 404: {"description": "Tenant not found", "model": ErrorResponse}},
    summary="Change a tenant's plan (admins only)",
)
async def upgrade_tenant(
    slug: str,
    payload: PlanUpgradeRequest | None = None,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> TenantResponse:
    """
    Upgrade a tenant, by default to 'pro'. Payment is handled elsewhere;
    this endpoint only records the plan and applies its note limit.
    """
    plan = payload.plan if payload is not None else PlanUpgradeRequest().plan
    tenant = await tenant_service.upgrade_plan(db=db, principal=principal, slug=slug, plan=plan)
    return TenantResponse.model_validate(tenant)


@router.get(
    "/users",
    response_model=UserListResponse,
    summary="Members of the caller's tenant",
)
async def list_users(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> UserListResponse:
    users = await tenant_service.list_users(db=db, principal=principal)
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users])


@router.post(
    "/users/invite",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: _DENIED, 400: {"description": "Email already in use", "model": ErrorResponse}},
    summary="Invite a user into the caller's tenant (admins only)",
)
async def invite_user(
    payload: UserInvite,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    user = await tenant_service.invite_user(
        db=db, principal=principal, email=payload.email, role=payload.role
    )
    return UserResponse.model_validate(user)
