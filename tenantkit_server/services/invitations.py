# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation lifecycle: issue, validate, accept (single use), list pending."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantkit_server.auth import ExternalIdentity, display_name
from tenantkit_server.errors import DEFAULT_MESSAGES, ErrorKind, ServiceError
from tenantkit_server.models import Invitation, Organization, User, UserRole
from tenantkit_server.models.timestamp import as_utc, utcnow
from tenantkit_server.services.access import validate_org_access
from tenantkit_server.services.invite_tokens import (
    build_invite_url,
    generate_token,
    hash_token,
    normalize_email,
)
from tenantkit_server.services.organizations import find_user_conflict, insert_user_conflict

logger = logging.getLogger(__name__)

INVITATION_TTL = timedelta(days=7)


@dataclass(frozen=True)
class InvitationClaim:
    """What a valid invitation grants. Always read from the stored record."""

    id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    role: UserRole


@dataclass(frozen=True)
class InvitationCheck:
    valid: bool
    invitation: InvitationClaim | None = None
    error: ErrorKind | None = None

    @property
    def message(self) -> str | None:
        return DEFAULT_MESSAGES[self.error] if self.error else None


@dataclass(frozen=True)
class IssuedInvitation:
    invite_url: str
    invitation: Invitation


def _pending_filter(now: datetime):
    return (Invitation.used_at.is_(None), Invitation.expires_at > now)


async def validate_invitation(db: AsyncSession, token: str) -> InvitationCheck:
    """Look up an invitation by token hash and report whether it can still be accepted."""
    if not token:
        return InvitationCheck(False, error=ErrorKind.INVALID_TOKEN)
    result = await db.execute(
        select(Invitation)
        .where(Invitation.token_hash == hash_token(token))
        .execution_options(populate_existing=True)
    )
    inv = result.scalar_one_or_none()
    if inv is None:
        return InvitationCheck(False, error=ErrorKind.INVALID_TOKEN)
    if inv.used_at is not None:
        return InvitationCheck(False, error=ErrorKind.ALREADY_USED)
    if as_utc(inv.expires_at) < utcnow():
        return InvitationCheck(False, error=ErrorKind.EXPIRED)
    return InvitationCheck(
        True,
        invitation=InvitationClaim(
            id=inv.id,
            organization_id=inv.organization_id,
            email=inv.email,
            role=UserRole(inv.role),
        ),
    )


async def issue_invitation(
    db: AsyncSession,
    requestor: User,
    organization_id: uuid.UUID,
    email: str,
    role: UserRole,
    base_url: str,
) -> IssuedInvitation:
    """Create an invitation for email into organization_id. Requestor must be its ORG_ADMIN."""
    access = validate_org_access(requestor, organization_id, UserRole.ORG_ADMIN)
    if not access.valid:
        raise ServiceError(ErrorKind.ACCESS_DENIED, access.error)
    email = normalize_email(email)
    if not email:
        raise ServiceError(ErrorKind.VALIDATION, "Organization ID and email are required")

    # Concurrent issuers for the same organization queue up here
    await db.execute(
        select(Organization.id).where(Organization.id == organization_id).with_for_update()
    )

    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise ServiceError(ErrorKind.USER_EXISTS)

    now = utcnow()
    existing_inv = await db.execute(
        select(Invitation.id).where(
            Invitation.organization_id == organization_id,
            Invitation.email == email,
            *_pending_filter(now),
        )
    )
    if existing_inv.first() is not None:
        raise ServiceError(ErrorKind.DUPLICATE_INVITATION)

    token = generate_token()
    inv = Invitation(
        organization_id=organization_id,
        email=email,
        role=role,
        token_hash=hash_token(token),
        expires_at=now + INVITATION_TTL,
        invited_by_id=requestor.id,
    )
    db.add(inv)
    try:
        await db.flush()
    except IntegrityError:
        # Only the unique token_hash index can fire here; duplicates by
        # (organization, email) are serialized by the lock above.
        await db.rollback()
        raise ServiceError(ErrorKind.DUPLICATE_INVITATION)
    await db.commit()
    logger.info("Invitation %s issued for organization %s by %s", inv.id, organization_id, requestor.id)
    return IssuedInvitation(invite_url=build_invite_url(base_url, token), invitation=inv)


async def accept_invitation(
    db: AsyncSession,
    identity: ExternalIdentity | None,
    token: str,
) -> User:
    """
    Consume an invitation and create the invitee's User, both or neither.

    The used_at update only applies while used_at is still NULL, so two
    concurrent accepts of the same token cannot both succeed.
    """
    if identity is None:
        raise ServiceError(ErrorKind.UNAUTHENTICATED)

    check = await validate_invitation(db, token)
    if not check.valid or check.invitation is None:
        raise ServiceError(check.error or ErrorKind.INVALID_TOKEN)
    claim = check.invitation

    existing = await db.execute(select(User.id).where(User.auth_user_id == identity.id))
    if existing.scalar_one_or_none() is not None:
        raise ServiceError(ErrorKind.ALREADY_ONBOARDED)

    if normalize_email(identity.email) != claim.email:
        raise ServiceError(ErrorKind.EMAIL_MISMATCH)

    conflict = await find_user_conflict(db, identity.id, claim.email)
    if conflict is not None:
        raise ServiceError(conflict)

    organization = await db.get(Organization, claim.organization_id)
    now = utcnow()
    user = User(
        organization=organization,
        auth_user_id=identity.id,
        email=claim.email,
        name=display_name(identity),
        role=claim.role,
        status="active",
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        raise await insert_user_conflict(db, identity.id, claim.email)

    consumed = await db.execute(
        update(Invitation)
        .where(Invitation.id == claim.id, Invitation.used_at.is_(None))
        .values(used_at=now)
    )
    if consumed.rowcount != 1:
        await db.rollback()
        raise ServiceError(ErrorKind.ALREADY_USED)

    await db.commit()
    logger.info("Invitation %s accepted; user %s joined organization %s", claim.id, user.id, claim.organization_id)
    return user


async def list_pending_invitations(
    db: AsyncSession,
    requestor: User,
    organization_id: uuid.UUID,
) -> list[Invitation]:
    """Unused, unexpired invitations of an organization, newest first. Admin only."""
    access = validate_org_access(requestor, organization_id, UserRole.ORG_ADMIN)
    if not access.valid:
        raise ServiceError(ErrorKind.ACCESS_DENIED, access.error)
    result = await db.execute(
        select(Invitation)
        .where(Invitation.organization_id == organization_id, *_pending_filter(utcnow()))
        .order_by(Invitation.created_at.desc())
    )
    return list(result.scalars().all())
