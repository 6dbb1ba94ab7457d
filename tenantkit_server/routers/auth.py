# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Authentication API routes: current user and invitation acceptance."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tenantkit_server.api.schemas import InviteAccept, UserEnvelope, UserResponse
from tenantkit_server.auth import ExternalIdentity, get_current_user, get_identity
from tenantkit_server.database import get_db
from tenantkit_server.models import User
from tenantkit_server.rate_limit import rate_limit_dep
from tenantkit_server.services.invitations import accept_invitation

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=UserEnvelope)
async def get_me(user: User = Depends(get_current_user)) -> UserEnvelope:
    """Get current user profile with organization."""
    return UserEnvelope(user=UserResponse.model_validate(user))


@router.post("/accept-invite", response_model=UserEnvelope, dependencies=[Depends(rate_limit_dep)])
async def accept_invite(
    body: InviteAccept,
    identity: ExternalIdentity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> UserEnvelope:
    """Accept an invitation as the signed-in identity. Creates the user; the token cannot be reused."""
    user = await accept_invitation(db, identity, body.token)
    return UserEnvelope(user=UserResponse.model_validate(user))
