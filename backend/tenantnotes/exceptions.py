"""
TenantNotes Backend — Custom Exception Hierarchy
=================================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes and user-friendly messages.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services, the access guard and the auth dependency.

Exception Hierarchy:
    TenantNotesError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized
    ├── AccessDeniedError        → 403 Forbidden (policy outcome)
    ├── NotFoundError            → 404 Not Found
    ├── DatabaseError            → 500 Internal Server Error
    └── InvalidGuardInputError   → 500 Internal Server Error (caller bug)

Two classes must never be conflated:
    AccessDeniedError is an expected result of an authorization check.
    InvalidGuardInputError means the caller handed the guard an unresolved
    or malformed context; it is a programming error and is never turned
    into a denial.
"""

from typing import Any, Dict, Optional


class TenantNotesError(Exception):
    """
    Base exception for all TenantNotes application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client
                  unless a handler chooses to)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(TenantNotesError):
    """
    Raised when client input fails a business rule.

    HTTP: 400 Bad Request. Schema-level problems are still reported by
    FastAPI as 422; this is for rules such as a duplicate email on invite.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(TenantNotesError):
    """
    Raised when a request carries no usable bearer token.

    HTTP: 401 Unauthorized with `WWW-Authenticate: Bearer`.
    The message is deliberately vague; the precise cause (expired,
    bad signature, unknown user) goes into `context` for the server log.
    """

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AccessDeniedError(TenantNotesError):
    """
    Raised when the access guard returns DENY for an operation.

    HTTP: 403 Forbidden. `reason` is the machine-readable deny reason
    ("cross-tenant", "insufficient-role", "plan-limit-exceeded") so the
    client can tell an upgrade prompt apart from a permission problem.
    """

    _MESSAGES = {
        "cross-tenant": "You do not have access to this tenant's data.",
        "insufficient-role": "Your role does not permit this operation.",
        "plan-limit-exceeded": "Your plan's note limit has been reached. Upgrade to add more notes.",
    }

    def __init__(
        self,
        reason: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = self._MESSAGES.get(reason, "Access denied.")
        ctx = context or {}
        ctx["reason"] = reason
        super().__init__(message=message, context=ctx)
        self.reason = reason


class NotFoundError(TenantNotesError):
    """
    Raised when a requested resource does not exist for the caller.

    HTTP: 404 Not Found. Records belonging to another tenant are reported
    the same way as records that do not exist at all.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class DatabaseError(TenantNotesError):
    """
    Raised when database operations fail unexpectedly.

    HTTP: 500. The message returned to the client is always generic;
    the SQL error is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvalidGuardInputError(TenantNotesError):
    """
    Raised when the access guard is called with an unresolved or malformed context.

    Examples: a principal without a tenant, an unknown operation kind, a
    create check with no usage figures. This signals a bug in the calling
    code, so it is handled as a 500 and logged with a traceback.
    """

    def __init__(
        self,
        message: str = "Access guard called with invalid input",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
