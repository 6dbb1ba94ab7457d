# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Authentication: resolve the auth provider's access token to an identity and a domain user."""

from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantkit_server.config import settings
from tenantkit_server.database import get_db
from tenantkit_server.errors import ErrorKind, ServiceError
from tenantkit_server.models import User

bearer_scheme = HTTPBearer(auto_error=False)
ACCESS_TOKEN_COOKIE = "access_token"


@dataclass(frozen=True)
class ExternalIdentity:
    """Principal verified by the auth provider. Distinct from the domain User."""

    id: str
    email: str
    profile_name: str | None = None


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a provider-issued JWT."""
    options = {"verify_aud": bool(settings.auth_jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience or None,
            options=options,
        )
        return payload
    except JWTError:
        return None


def identity_from_claims(claims: dict[str, Any]) -> ExternalIdentity | None:
    """Build an identity from token claims. Requires sub and email."""
    sub = claims.get("sub")
    email = claims.get("email")
    if not sub or not email:
        return None
    metadata = claims.get("user_metadata") or {}
    profile_name = metadata.get("full_name") if isinstance(metadata, dict) else None
    return ExternalIdentity(id=str(sub), email=str(email), profile_name=profile_name or None)


def display_name(identity: ExternalIdentity) -> str | None:
    """Profile name if the provider has one, else the email local part."""
    if identity.profile_name:
        return identity.profile_name
    local = identity.email.split("@")[0]
    return local or None


def _get_token_from_request(
    request: Request, credentials: HTTPAuthorizationCredentials | None
) -> str | None:
    """Extract JWT from Bearer header or access_token cookie."""
    if credentials:
        return credentials.credentials
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


async def get_optional_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> ExternalIdentity | None:
    """Identity behind the request, or None when no valid token was sent."""
    token = _get_token_from_request(request, credentials)
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    return identity_from_claims(payload)


async def get_identity(
    identity: ExternalIdentity | None = Depends(get_optional_identity),
) -> ExternalIdentity:
    """Like get_optional_identity but raises UNAUTHENTICATED."""
    if identity is None:
        raise ServiceError(ErrorKind.UNAUTHENTICATED)
    return identity


async def get_current_user(
    identity: ExternalIdentity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Domain user (with organization) for the authenticated identity."""
    result = await db.execute(select(User).where(User.auth_user_id == identity.id))
    user = result.scalar_one_or_none()
    if not user:
        raise ServiceError(ErrorKind.UNAUTHENTICATED, "Not authenticated")
    return user
