# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Organization API - bootstrap a tenant, list its pending invitations."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tenantkit_server.api.schemas import (
    InitialOrganizationResponse,
    InvitationPublic,
    OrganizationCreate,
    OrganizationResponse,
    UserResponse,
)
from tenantkit_server.auth import ExternalIdentity, get_current_user, get_identity
from tenantkit_server.database import get_db
from tenantkit_server.models import User
from tenantkit_server.rate_limit import rate_limit_dep
from tenantkit_server.services.invitations import list_pending_invitations
from tenantkit_server.services.organizations import create_initial_organization

router = APIRouter(prefix="/organizations", tags=["organizations"])


@router.post("", response_model=InitialOrganizationResponse, dependencies=[Depends(rate_limit_dep)])
async def create_organization(
    body: OrganizationCreate,
    identity: ExternalIdentity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> InitialOrganizationResponse:
    """Create an organization with the caller as its first admin. Only for identities without a user."""
    user = await create_initial_organization(db, identity, body.name, body.domain)
    return InitialOrganizationResponse(
        organization=OrganizationResponse.model_validate(user.organization),
        user=UserResponse.model_validate(user),
    )


@router.get("/{organization_id}/invitations", response_model=list[InvitationPublic])
async def list_invitations(
    organization_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[InvitationPublic]:
    """List pending (unused, not expired) invitations. ORG_ADMIN only."""
    invitations = await list_pending_invitations(db, user, organization_id)
    return [InvitationPublic.model_validate(inv) for inv in invitations]
