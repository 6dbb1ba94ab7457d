# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pydantic schemas for API request/response."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from tenantkit_server.models import UserRole


class ErrorResponse(BaseModel):
    error: str
    detail: str


# Organizations
class OrganizationResponse(BaseModel):
    id: uuid.UUID
    name: str
    domain: str | None = None

    model_config = ConfigDict(from_attributes=True)


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    domain: str | None = Field(default=None, max_length=255)


# Users
class UserResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    auth_user_id: str
    email: str
    name: str | None = None
    role: UserRole
    status: str
    organization: OrganizationResponse

    model_config = ConfigDict(from_attributes=True)


class UserEnvelope(BaseModel):
    user: UserResponse


class InitialOrganizationResponse(BaseModel):
    organization: OrganizationResponse
    user: UserResponse


# Invitations
class InviteCreate(BaseModel):
    """Omit organization_id to use the organization named by the subdomain header."""

    organization_id: uuid.UUID | None = None
    email: EmailStr
    role: UserRole = UserRole.USER


class InvitationPublic(BaseModel):
    id: uuid.UUID
    email: str
    role: UserRole
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InviteCreated(BaseModel):
    invite_url: str
    invitation: InvitationPublic
    email_sent: bool = False


class InviteAccept(BaseModel):
    token: str = Field(min_length=1)


class InvitationClaimResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    role: UserRole

    model_config = ConfigDict(from_attributes=True)


class InviteValidation(BaseModel):
    valid: bool
    invitation: InvitationClaimResponse | None = None
