# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Organization bootstrap and subdomain lookup."""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantkit_server.auth import ExternalIdentity, display_name
from tenantkit_server.errors import ErrorKind, ServiceError
from tenantkit_server.models import Organization, User, UserRole
from tenantkit_server.services.invite_tokens import normalize_email

logger = logging.getLogger(__name__)

ORGANIZATION_HINT_HEADER = "x-organization-subdomain"


async def get_organization_by_domain(db: AsyncSession, domain: str | None) -> Organization | None:
    """Resolve a subdomain hint to an organization. None if blank or unknown."""
    domain = (domain or "").strip().lower()
    if not domain:
        return None
    result = await db.execute(
        select(Organization).where(func.lower(Organization.domain) == domain).limit(1)
    )
    return result.scalar_one_or_none()


async def find_user_conflict(
    db: AsyncSession, auth_user_id: str, email: str
) -> ErrorKind | None:
    """Why a new User for this identity and email cannot be inserted, if it cannot."""
    existing = await db.execute(select(User.id).where(User.auth_user_id == auth_user_id))
    if existing.scalar_one_or_none() is not None:
        return ErrorKind.ALREADY_ONBOARDED
    taken = await db.execute(select(User.id).where(User.email == email))
    if taken.scalar_one_or_none() is not None:
        return ErrorKind.USER_EXISTS
    return None


async def insert_user_conflict(db: AsyncSession, auth_user_id: str, email: str) -> ServiceError:
    """Roll back a failed User insert and name the unique index that was hit."""
    await db.rollback()
    kind = await find_user_conflict(db, auth_user_id, email)
    # None only if the conflicting row was removed again in the meantime
    return ServiceError(kind or ErrorKind.ALREADY_ONBOARDED)


async def create_initial_organization(
    db: AsyncSession,
    identity: ExternalIdentity,
    name: str,
    domain: str | None = None,
) -> User:
    """Create an organization with the calling identity as its first ORG_ADMIN."""
    name = (name or "").strip()
    if not name:
        raise ServiceError(ErrorKind.VALIDATION, "Organization name is required")
    domain = (domain or "").strip().lower() or None

    email = normalize_email(identity.email)
    conflict = await find_user_conflict(db, identity.id, email)
    if conflict is not None:
        raise ServiceError(conflict)

    organization = Organization(name=name, domain=domain)
    user = User(
        organization=organization,
        auth_user_id=identity.id,
        email=email,
        name=display_name(identity),
        role=UserRole.ORG_ADMIN,
        status="active",
    )
    db.add_all([organization, user])
    try:
        await db.flush()
    except IntegrityError:
        raise await insert_user_conflict(db, identity.id, email)
    await db.commit()
    logger.info("Organization %s created with admin %s", organization.id, user.id)
    return user
