# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Database models."""

from tenantkit_server.models.base import Base
from tenantkit_server.models.organization import Organization
from tenantkit_server.models.user import User, UserRole
from tenantkit_server.models.invitation import Invitation

__all__ = [
    "Base",
    "Organization",
    "User",
    "UserRole",
    "Invitation",
]
