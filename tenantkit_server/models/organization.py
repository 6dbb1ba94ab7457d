# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Organization model - the tenant boundary."""

import uuid

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tenantkit_server.models.base import Base
from tenantkit_server.models.timestamp import TimestampMixin


class Organization(Base, TimestampMixin):
    """A tenant. Every user and invitation belongs to exactly one."""

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Subdomain used by the routing layer to hint the organization
    domain: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
