# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation API - admins issue invites; anyone holding a token can check it."""

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tenantkit_server.api.schemas import (
    InvitationClaimResponse,
    InvitationPublic,
    InviteCreate,
    InviteCreated,
    InviteValidation,
)
from tenantkit_server.auth import get_current_user
from tenantkit_server.config import settings
from tenantkit_server.database import get_db
from tenantkit_server.errors import ErrorKind, ServiceError
from tenantkit_server.models import User
from tenantkit_server.rate_limit import rate_limit_dep
from tenantkit_server.services.email import send_invitation_email
from tenantkit_server.services.invitations import issue_invitation, validate_invitation
from tenantkit_server.services.organizations import get_organization_by_domain

router = APIRouter(prefix="/auth", tags=["invite"])


@router.post("/invite", response_model=InviteCreated, dependencies=[Depends(rate_limit_dep)])
async def create_invitation(
    body: InviteCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    x_organization_subdomain: str | None = Header(default=None),
) -> InviteCreated:
    """Create an invitation. ORG_ADMIN of the target organization only. Returns the one-time invite URL."""
    organization_id = body.organization_id
    if organization_id is None:
        hinted = await get_organization_by_domain(db, x_organization_subdomain)
        if hinted is None:
            raise ServiceError(ErrorKind.VALIDATION, "Organization ID and email are required")
        organization_id = hinted.id

    issued = await issue_invitation(
        db,
        requestor=user,
        organization_id=organization_id,
        email=body.email,
        role=body.role,
        base_url=settings.app_base_url,
    )
    inv = issued.invitation
    email_sent = False
    if settings.send_invitation_emails:
        email_sent = await send_invitation_email(
            inv.email, issued.invite_url, user.organization.name, inv.expires_at
        )
    return InviteCreated(
        invite_url=issued.invite_url,
        invitation=InvitationPublic.model_validate(inv),
        email_sent=email_sent,
    )


@router.get("/invite/validate", response_model=InviteValidation, dependencies=[Depends(rate_limit_dep)])
async def check_invitation(
    token: str = Query(..., description="Invitation token from the invite link"),
    db: AsyncSession = Depends(get_db),
) -> InviteValidation:
    """Check a token without consuming it. Invalid, used or expired tokens return their error kind."""
    check = await validate_invitation(db, token)
    if not check.valid or check.invitation is None:
        raise ServiceError(check.error or ErrorKind.INVALID_TOKEN)
    return InviteValidation(
        valid=True,
        invitation=InvitationClaimResponse.model_validate(check.invitation),
    )
