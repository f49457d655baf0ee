"""
TenantNotes Backend — Tenant Service
=====================================

What:  Tenant provisioning, plan usage accounting, plan upgrades and member
       invitations.
Why:   The access guard only *decides*; this service is the persistence side
       of the contract. It supplies the usage figures the guard's plan-limit
       check consumes and owns the authoritative, atomic note count.
Who:   NoteService (slot reservation), route handlers (tenant/user endpoints),
       the auth dependency (user lookup).

Plan-limit enforcement:
    The guard's `count >= limit` check runs on a count read earlier in the
    request, so two concurrent creates can both pass it. The real boundary is
    reserve_note_slot:

        UPDATE tenants
           SET note_count = note_count + 1
         WHERE id = :tenant_id AND note_count < note_limit

    The database evaluates the predicate and the increment as one statement,
    so only as many creates as there are free slots can succeed. Zero rows
    updated means the limit was reached in the meantime.
"""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from tenantnotes.config import settings
from tenantnotes.exceptions import (
    AccessDeniedError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from tenantnotes.models.tenant import Tenant, User
from tenantnotes.services.access_guard import (
    DenyReason,
    OperationKind,
    PlanTier,
    Principal,
    Role,
    Target,
    TenantUsage,
    enforce,
    scope_query,
)

logger = logging.getLogger(__name__)

# Emails are unique across all tenants (they are the login identity). The
# rejection must not say whether the address is taken in another tenant.
_EMAIL_UNAVAILABLE = "This email address cannot be invited"


class TenantService:
    """
    Persistence-side collaborator of the access guard.

    Stateless; every method receives the request's session.
    """

    # ── Provisioning ──────────────────────────────────────────────────────

    async def provision_tenant(
        self,
        db: AsyncSession,
        slug: str,
        name: str,
        admin_email: str,
        plan: PlanTier = PlanTier.FREE,
    ) -> Tuple[Tenant, User]:
        """
        Create a tenant together with its first admin.

        This is the registration path; it runs before any principal exists,
        so it is not guarded.
        """
        plan = PlanTier(plan)
        tenant = Tenant(
            slug=slug,
            name=name,
            plan=plan.value,
            note_limit=settings.note_limit_for(plan.value),
            note_count=0,
        )
        db.add(tenant)
        try:
            await db.flush()
            admin = User(tenant_id=tenant.id, email=admin_email.lower(), role=Role.ADMIN.value)
            db.add(admin)
            await db.flush()
        except IntegrityError as e:
            raise ValidationError(
                message=f"Tenant '{slug}' or user '{admin_email}' already exists",
                context={"original_error": type(e).__name__},
            )

        logger.info("Provisioned tenant %s (plan=%s) with admin %s", slug, plan.value, admin.id)
        return tenant, admin

    # ── Usage Accounting ──────────────────────────────────────────────────

    async def get_usage(self, db: AsyncSession, tenant_id: UUID) -> TenantUsage:
        """Current note count and limit for the plan-limit fast check."""
        result = await db.execute(
            select(Tenant.note_count, Tenant.note_limit).where(Tenant.id == tenant_id)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError(resource="tenant", resource_id=str(tenant_id))
        return TenantUsage(count=row.note_count, limit=row.note_limit)

    async def reserve_note_slot(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        principal: Optional[Principal] = None,
    ) -> None:
        """
        Atomically take one note slot from the tenant's plan.

        `principal` is the caller on whose behalf the slot is taken; it only
        feeds the denial log line.

        Raises:
            AccessDeniedError("plan-limit-exceeded"): no slot was free at write time.
            DatabaseError: the update kept failing after retries.
        """
        try:
            reserved = await self._conditional_increment(db, tenant_id)
        except OperationalError as e:
            logger.error("Note slot reservation failed for tenant %s: %s", tenant_id, str(e))
            raise DatabaseError(
                message="Could not save the note. Please try again.",
                context={"tenant_id": str(tenant_id)},
            )

        if not reserved:
            reason = DenyReason.PLAN_LIMIT_EXCEEDED.value
            # Same fields as access_guard.enforce, so one alert covers both paths
            log_context = {
                "reason": reason,
                "operation": OperationKind.CREATE.value,
                "principal_id": str(principal.id) if principal else None,
                "caller_tenant_id": str(principal.tenant_id) if principal else str(tenant_id),
                "target_tenant_id": str(tenant_id),
                "record_id": None,
            }
            logger.warning(
                "Access denied (%s) at write time: principal %s of tenant %s attempted create on tenant %s",
                reason,
                log_context["principal_id"],
                log_context["caller_tenant_id"],
                log_context["target_tenant_id"],
                extra=log_context,
            )
            raise AccessDeniedError(reason=reason, context=log_context)

    @retry(
        # Only lock contention / deadlock style errors are worth repeating
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _conditional_increment(self, db: AsyncSession, tenant_id: UUID) -> bool:
        # Savepoint: a failed attempt must not abort the request's transaction
        async with db.begin_nested():
            result = await db.execute(
                update(Tenant)
                .where(Tenant.id == tenant_id, Tenant.note_count < Tenant.note_limit)
                .values(note_count=Tenant.note_count + 1)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def release_note_slot(self, db: AsyncSession, tenant_id: UUID) -> None:
        """Give a slot back after a delete. Never takes the count below zero."""
        await db.execute(
            update(Tenant)
            .where(Tenant.id == tenant_id, Tenant.note_count > 0)
            .values(note_count=Tenant.note_count - 1)
            .execution_options(synchronize_session=False)
        )

    # ── Tenant Administration ─────────────────────────────────────────────

    async def get_tenant(self, db: AsyncSession, principal: Principal) -> Tenant:
        """The caller's own tenant, with its current usage."""
        enforce(principal, OperationKind.READ, Target(tenant_id=principal.tenant_id))
        tenant = await db.get(Tenant, principal.tenant_id, populate_existing=True)
        if tenant is None:
            raise NotFoundError(resource="tenant", resource_id=str(principal.tenant_id))
        return tenant

    async def upgrade_plan(
        self,
        db: AsyncSession,
        principal: Principal,
        slug: str,
        plan: PlanTier = PlanTier.PRO,
    ) -> Tenant:
        """
        Move a tenant to another plan and apply that plan's note limit.

        The tenant named in the URL is the target, so an admin of one tenant
        upgrading another is denied as cross-tenant before the role check.
        """
        plan = PlanTier(plan)
        result = await db.execute(select(Tenant).where(Tenant.slug == slug))
        tenant = result.scalar_one_or_none()
        if tenant is None:
            raise NotFoundError(resource="tenant", resource_id=slug)

        enforce(principal, OperationKind.MANAGE_TENANT, Target(tenant_id=tenant.id))

        tenant.plan = plan.value
        tenant.note_limit = settings.note_limit_for(plan.value)
        await db.flush()
        logger.info(
            "Tenant %s moved to plan %s by %s (limit=%d)",
            slug,
            plan.value,
            principal.id,
            tenant.note_limit,
        )
        return tenant

    # ── Members ───────────────────────────────────────────────────────────

    async def invite_user(
        self,
        db: AsyncSession,
        principal: Principal,
        email: str,
        role: Role = Role.MEMBER,
    ) -> User:
        """Add a user to the inviter's tenant. The tenant is never taken from input."""
        enforce(principal, OperationKind.INVITE_USER, Target(tenant_id=principal.tenant_id))

        existing = await db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise ValidationError(message=_EMAIL_UNAVAILABLE, field="email")

        user = User(tenant_id=principal.tenant_id, email=email, role=Role(role).value)
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            raise ValidationError(message=_EMAIL_UNAVAILABLE, field="email")

        logger.info("User %s invited to tenant %s as %s", user.id, principal.tenant_id, user.role)
        return user

    async def list_users(self, db: AsyncSession, principal: Principal) -> List[User]:
        """Members of the caller's tenant, oldest first."""
        enforce(principal, OperationKind.LIST)
        query = scope_query(principal, select(User), User).order_by(User.created_at, User.email)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_user(self, db: AsyncSession, user_id: UUID) -> Optional[User]:
        """
        Unscoped lookup by primary key.

        Only the authentication dependency calls this, to turn a verified
        token subject into a Principal; there is no tenant to scope by yet.
        """
        return await db.get(User, user_id)


# ── Singleton Instance ────────────────────────────────────────────────────
tenant_service = TenantService()
