# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""User model and roles."""

import enum
import uuid

from sqlalchemy import Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenantkit_server.models.base import Base
from tenantkit_server.models.organization import Organization
from tenantkit_server.models.timestamp import TimestampMixin


class UserRole(str, enum.Enum):
    """Organization roles, ordered from least to most privileged."""

    USER = "USER"
    ORG_ADMIN = "ORG_ADMIN"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def satisfies(self, required: "UserRole") -> bool:
        """True if this role grants at least the access of ``required``."""
        return self.rank >= required.rank


_ROLE_RANK = {UserRole.USER: 0, UserRole.ORG_ADMIN: 1}

role_enum = Enum(UserRole, name="user_role")


class User(Base, TimestampMixin):
    """Domain user, linked one-to-one to an auth provider identity."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False, index=True
    )
    auth_user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(role_enum, default=UserRole.USER, nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="active", nullable=False)

    organization: Mapped["Organization"] = relationship("Organization", lazy="selectin")
