# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Organization-scoped access checks. Pure decisions, no I/O."""

import uuid
from dataclasses import dataclass

from tenantkit_server.models import User, UserRole


@dataclass(frozen=True)
class AccessResult:
    valid: bool
    error: str | None = None


def belongs_to_organization(user: User, organization_id: uuid.UUID) -> bool:
    return user.organization_id == organization_id


def has_role(user: User, required_role: UserRole) -> bool:
    return UserRole(user.role).satisfies(required_role)


def validate_org_access(
    user: User,
    organization_id: uuid.UUID,
    required_role: UserRole | None = None,
) -> AccessResult:
    """
    Decide whether an already-authenticated user may act on an organization.
    Membership is checked first; the role only matters inside the user's own organization.
    """
    if not belongs_to_organization(user, organization_id):
        return AccessResult(False, "Access denied: user does not belong to this organization")
    if required_role is not None and not has_role(user, required_role):
        return AccessResult(False, f"Access denied: {required_role.value} role required")
    return AccessResult(True)
