"""
TenantNotes Backend — Authentication
=====================================

What:  Bearer-token verification and the `get_current_principal` dependency.
Why:   The access guard trusts the Principal it is given completely, so this
       is the one place that decides who the caller is.
How:   PyJWT verifies signature, expiry, issuer and audience. The token's
       `sub` is then looked up in `users`, and the Principal is built from
       that row: tenant and role come from the database, never from claims,
       so a token minted before a role change cannot carry the old role.
Who:   Every /api route depends on `get_current_principal`.

Token shape (HS256):
    {
        "sub": "<user uuid>",
        "iss": "tenantnotes",
        "aud": "tenantnotes-api",
        "iat": 1700000000,
        "exp": 1700003600
    }
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tenantnotes.config import settings
from tenantnotes.database import get_db_session
from tenantnotes.exceptions import AuthenticationError
from tenantnotes.services.access_guard import Principal, Role
from tenantnotes.services.tenant_service import tenant_service

logger = logging.getLogger(__name__)

# auto_error=False: a missing header becomes our AuthenticationError (401),
# not FastAPI's default 403
bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: UUID, expires_in: Optional[timedelta] = None) -> str:
    """
    Issue a signed access token for a user.

    Used by tests and by operators issuing tokens; an external identity provider
    sharing JWT_SECRET can mint the same tokens.
    """
    now = datetime.now(timezone.utc)
    lifetime = expires_in if expires_in is not None else timedelta(minutes=settings.jwt_expiry_minutes)
    payload = {
        "sub": str(user_id),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> UUID:
    """
    Verify a token and return its subject.

    Raises:
        AuthenticationError: expired, badly signed, wrong issuer/audience,
            or a subject that is not a UUID.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "sub", "iss", "aud"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError(message="Token has expired", context={"cause": "expired"})
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(context={"cause": type(e).__name__})

    try:
        return UUID(str(payload["sub"]))
    except ValueError:
        raise AuthenticationError(context={"cause": "malformed_subject"})


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> Principal:
    """
    FastAPI dependency: resolve the bearer token into a Principal.

    Also records the tenant on request.state for the access log.

    Raises:
        AuthenticationError: no token, invalid token, or unknown user (→ 401)
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(context={"cause": "missing_token"})

    user_id = decode_access_token(credentials.credentials)
    user = await tenant_service.get_user(db, user_id)
    if user is None:
        logger.warning("Valid token for unknown user %s", user_id)
        raise AuthenticationError(context={"cause": "unknown_user"})

    request.state.tenant_id = user.tenant_id
    return Principal(id=user.id, tenant_id=user.tenant_id, role=Role(user.role))
