"""
TenantNotes Backend — Tenant Access Guard
==========================================

What:  The policy layer every read and write of tenant-owned data goes through.
Why:   In a shared-schema multi-tenant database the most likely real-world bug
       is a query that forgets its tenant filter. Routing every data access
       through `authorize` and `scope_query` makes that filter impossible to
       omit at a call site.
How:   `authorize` is a pure decision function over (principal, operation,
       target, usage). `scope_query` adds the mandatory tenant equality
       constraint to a SQLAlchemy statement. `enforce` wraps `authorize` for
       service code: it logs and raises on DENY.
Who:   NoteService and TenantService. Route handlers never touch tenant-owned
       tables directly.

Decision rules (fixed order, first match wins):
    1. target given and target.tenant_id != principal.tenant_id → DENY(cross-tenant)
       Isolation is checked before role and is never waived, including for admins.
    2. operation needs an elevated role and the principal's role is not
       elevated → DENY(insufficient-role)
    3. create, and usage.count >= usage.limit → DENY(plan-limit-exceeded)
    4. ALLOW

The plan-limit check here is a fast reject only. The authoritative check is
the conditional UPDATE in TenantService.reserve_note_slot, which the database
evaluates atomically at write time.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, TypeVar, Union
from uuid import UUID

from tenantnotes.exceptions import AccessDeniedError, InvalidGuardInputError

logger = logging.getLogger(__name__)

Identifier = Union[UUID, str]


class Role(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class PlanTier(str, Enum):
    FREE = "free"
    PRO = "pro"


class OperationKind(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    LIST = "list"
    INVITE_USER = "invite-user"
    MANAGE_TENANT = "manage-tenant"


class DenyReason(str, Enum):
    CROSS_TENANT = "cross-tenant"
    INSUFFICIENT_ROLE = "insufficient-role"
    PLAN_LIMIT_EXCEEDED = "plan-limit-exceeded"


@dataclass(frozen=True)
class Principal:
    """An authenticated caller, already verified by the auth dependency."""

    id: Identifier
    tenant_id: Identifier
    role: Role


@dataclass(frozen=True)
class Target:
    """
    What an operation acts on.

    A specific record is (tenant_id, record_id, owner_id). An explicit tenant
    context, e.g. the tenant named in a create or upgrade request, is just
    tenant_id. owner_id is only consulted for the delete-someone-else's-record
    rule.
    """

    tenant_id: Identifier
    record_id: Optional[Identifier] = None
    owner_id: Optional[Identifier] = None


@dataclass(frozen=True)
class TenantUsage:
    """Current note count and plan limit of a tenant, read by the caller beforehand."""

    count: int
    limit: int


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(allowed=False, reason=reason)


# ── Role Policy ───────────────────────────────────────────────────────────
# Both tables must name every member of their enum; the check below runs at
# import so a new role or operation kind cannot ship without a decision.


class _Requirement(Enum):
    ANY_ROLE = "any_role"
    ELEVATED = "elevated"
    ELEVATED_UNLESS_OWNER = "elevated_unless_owner"


_OPERATION_REQUIREMENTS: Dict[OperationKind, _Requirement] = {
    OperationKind.CREATE: _Requirement.ANY_ROLE,
    OperationKind.READ: _Requirement.ANY_ROLE,
    OperationKind.UPDATE: _Requirement.ANY_ROLE,
    OperationKind.DELETE: _Requirement.ELEVATED_UNLESS_OWNER,
    OperationKind.LIST: _Requirement.ANY_ROLE,
    OperationKind.INVITE_USER: _Requirement.ELEVATED,
    OperationKind.MANAGE_TENANT: _Requirement.ELEVATED,
}

_ROLE_IS_ELEVATED: Dict[Role, bool] = {
    Role.ADMIN: True,
    Role.MEMBER: False,
}

for _table, _enum in ((_OPERATION_REQUIREMENTS, OperationKind), (_ROLE_IS_ELEVATED, Role)):
    _missing = set(_enum) - set(_table)
    if _missing:
        raise RuntimeError(
            f"Access policy has no entry for {_enum.__name__} members: "
            f"{sorted(m.value for m in _missing)}"
        )


_E = TypeVar("_E", bound=Enum)


def _coerce(enum_cls: "type[_E]", value: object, what: str) -> _E:
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidGuardInputError(
            message=f"Unrecognized {what}: {value!r}",
            context={what: repr(value)},
        ) from None


def _validate_principal(principal: Optional[Principal]) -> Role:
    if principal is None:
        raise InvalidGuardInputError(message="No principal supplied to the access guard")
    if getattr(principal, "tenant_id", None) in (None, ""):
        raise InvalidGuardInputError(
            message="Principal has no tenant",
            context={"principal_id": str(getattr(principal, "id", None))},
        )
    if getattr(principal, "id", None) in (None, ""):
        raise InvalidGuardInputError(message="Principal has no identity")
    role = getattr(principal, "role", None)
    if role is None:
        raise InvalidGuardInputError(
            message="Principal has no role",
            context={"principal_id": str(principal.id)},
        )
    return _coerce(Role, role, "role")


def _requires_elevation(
    principal: Principal, operation: OperationKind, target: Optional[Target]
) -> bool:
    requirement = _OPERATION_REQUIREMENTS[operation]
    if requirement is _Requirement.ANY_ROLE:
        return False
    if requirement is _Requirement.ELEVATED:
        return True
    # ELEVATED_UNLESS_OWNER: only removing someone else's record needs an admin
    return (
        target is not None
        and target.owner_id is not None
        and target.owner_id != principal.id
    )


def authorize(
    principal: Principal,
    operation: Union[OperationKind, str],
    target: Optional[Target] = None,
    usage: Optional[TenantUsage] = None,
) -> Decision:
    """
    Decide whether `principal` may perform `operation` on `target`.

    Pure and synchronous: no I/O, no shared state, safe to call from any
    number of concurrent requests.

    Args:
        principal: The verified caller.
        operation: An OperationKind (or its string value).
        target: A specific record, an explicit tenant, or None when the
                scope is simply the principal's own tenant.
        usage:  Current count/limit of the principal's tenant. Required
                for `create`.

    Returns:
        Decision.allow() or Decision.deny(reason).

    Raises:
        InvalidGuardInputError: the inputs describe a caller bug (missing
            tenant or role, unknown operation, target without a tenant,
            create without usage).
    """
    role = _validate_principal(principal)
    operation = _coerce(OperationKind, operation, "operation")
    if target is not None and target.tenant_id in (None, ""):
        raise InvalidGuardInputError(
            message="Target has no tenant",
            context={"operation": operation.value},
        )
    if operation is OperationKind.CREATE and usage is None:
        raise InvalidGuardInputError(
            message="Create must be authorized with the tenant's current usage",
            context={"tenant_id": str(principal.tenant_id)},
        )

    if target is not None and target.tenant_id != principal.tenant_id:
        return Decision.deny(DenyReason.CROSS_TENANT)

    if _requires_elevation(principal, operation, target) and not _ROLE_IS_ELEVATED[role]:
        return Decision.deny(DenyReason.INSUFFICIENT_ROLE)

    if operation is OperationKind.CREATE and usage.count >= usage.limit:
        return Decision.deny(DenyReason.PLAN_LIMIT_EXCEEDED)

    return Decision.allow()


def enforce(
    principal: Principal,
    operation: Union[OperationKind, str],
    target: Optional[Target] = None,
    usage: Optional[TenantUsage] = None,
) -> None:
    """
    Authorize and raise AccessDeniedError on DENY.

    Every denial is logged at WARNING with both tenant ids so that
    cross-tenant attempts can be alerted on from the logs.
    """
    decision = authorize(principal, operation, target, usage)
    if decision.allowed:
        return

    reason = decision.reason.value
    log_context = {
        "reason": reason,
        "operation": str(getattr(operation, "value", operation)),
        "principal_id": str(principal.id),
        "caller_tenant_id": str(principal.tenant_id),
        "target_tenant_id": str(target.tenant_id) if target else str(principal.tenant_id),
        "record_id": str(target.record_id) if target and target.record_id else None,
    }
    logger.warning(
        "Access denied (%s): principal %s of tenant %s attempted %s on tenant %s",
        reason,
        log_context["principal_id"],
        log_context["caller_tenant_id"],
        log_context["operation"],
        log_context["target_tenant_id"],
        extra=log_context,
    )
    raise AccessDeniedError(reason=reason, context=log_context)


# ── Query Scoping ─────────────────────────────────────────────────────────
# The tenant a statement is scoped to is stored in its execution options,
# which makes scoping idempotent and lets a second call spot a conflict.
_SCOPE_OPTION = "tenantnotes_tenant_scope"


def scope_query(principal: Principal, query, model):
    """
    Constrain a SQLAlchemy Select/Update/Delete to the principal's tenant.

    Adds `model.tenant_id == principal.tenant_id` to the WHERE clause. There
    is no flag that skips this; cross-tenant access belongs to a separate,
    separately audited code path, not this one.

    Applying it twice with the same principal returns the statement
    unchanged.

    Raises:
        InvalidGuardInputError: invalid principal, a model without a
            tenant_id column, or a statement already scoped to another tenant.
    """
    _validate_principal(principal)
    column = getattr(model, "tenant_id", None)
    if column is None:
        raise InvalidGuardInputError(
            message=f"{getattr(model, '__name__', model)!s} is not tenant-owned",
        )

    scoped_to = query.get_execution_options().get(_SCOPE_OPTION)
    if scoped_to is not None:
        if scoped_to == principal.tenant_id:
            return query
        raise InvalidGuardInputError(
            message="Query is already scoped to a different tenant",
            context={
                "scoped_tenant_id": str(scoped_to),
                "caller_tenant_id": str(principal.tenant_id),
            },
        )

    return query.where(column == principal.tenant_id).execution_options(
        **{_SCOPE_OPTION: principal.tenant_id}
    )
