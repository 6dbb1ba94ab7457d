# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation token generation and hashing. Only hashes are ever stored."""

import hashlib
import hmac
import secrets
from urllib.parse import quote

TOKEN_BYTES = 32  # 256 bits, 64 hex chars


def generate_token() -> str:
    """Return a fresh random token as 64 lowercase hex characters."""
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """SHA-256 hex digest (64 chars) used as the storage and lookup key."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def verify_token(token: str, token_hash: str) -> bool:
    return hmac.compare_digest(hash_token(token), token_hash)


def build_invite_url(base_url: str, token: str) -> str:
    """Link the invitee opens to accept. Carries the raw token, never the hash."""
    return f"{base_url.rstrip('/')}/accept-invite?token={quote(token, safe='')}"


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()
