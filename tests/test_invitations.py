# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation service tests: issue, validate, accept, list."""

import re
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from tenantkit_server.auth import ExternalIdentity
from tenantkit_server.errors import ErrorKind, ServiceError
from tenantkit_server.models import Invitation, User, UserRole
from tenantkit_server.models.timestamp import utcnow
from tenantkit_server.services import invitations as invitation_service
from tenantkit_server.services.invitations import (
    InvitationCheck,
    InvitationClaim,
    accept_invitation,
    issue_invitation,
    list_pending_invitations,
    validate_invitation,
)
from tenantkit_server.services.invite_tokens import generate_token, hash_token

pytestmark = pytest.mark.anyio

BASE_URL = "https://app.example.com"


async def _store_invitation(session, org_id, email, *, expires_in=timedelta(days=1), used=False):
    token = generate_token()
    inv = Invitation(
        organization_id=org_id,
        email=email,
        role=UserRole.USER,
        token_hash=hash_token(token),
        expires_at=utcnow() + expires_in,
        used_at=utcnow() if used else None,
    )
    session.add(inv)
    await session.commit()
    return token


def _token_from(url: str) -> str:
    match = re.search(r"token=([0-9a-f]{64})$", url)
    assert match, url
    return match.group(1)


async def _count_users(database, **filters) -> int:
    async with database.session_maker() as s:
        stmt = select(func.count()).select_from(User).filter_by(**filters)
        return (await s.execute(stmt)).scalar_one()


async def test_validate_unknown_token(session):
    check = await validate_invitation(session, generate_token())
    assert not check.valid
    assert check.error == ErrorKind.INVALID_TOKEN
    assert check.invitation is None


async def test_validate_empty_token(session):
    check = await validate_invitation(session, "")
    assert check.error == ErrorKind.INVALID_TOKEN


async def test_issue_then_validate_returns_stored_claim(session, org, admin):
    issued = await issue_invitation(session, admin, org.id, "Carol@X.com ", UserRole.ORG_ADMIN, BASE_URL)
    token = _token_from(issued.invite_url)
    assert issued.invite_url.startswith(f"{BASE_URL}/accept-invite?token=")
    assert issued.invitation.token_hash == hash_token(token)
    assert issued.invitation.email == "carol@x.com"

    check = await validate_invitation(session, token)
    assert check.valid
    assert check.invitation == InvitationClaim(
        id=issued.invitation.id,
        organization_id=org.id,
        email="carol@x.com",
        role=UserRole.ORG_ADMIN,
    )


async def test_issue_sets_seven_day_expiry(session, org, admin):
    before = utcnow()
    issued = await issue_invitation(session, admin, org.id, "dave@x.com", UserRole.USER, BASE_URL)
    delta = issued.invitation.expires_at - before
    assert timedelta(days=7) <= delta < timedelta(days=7, minutes=1)
    assert issued.invitation.used_at is None
    assert issued.invitation.invited_by_id == admin.id


async def test_validate_expired(session, org):
    token = await _store_invitation(session, org.id, "late@x.com", expires_in=-timedelta(days=1))
    check = await validate_invitation(session, token)
    assert not check.valid
    assert check.error == ErrorKind.EXPIRED


async def test_validate_used(session, org):
    token = await _store_invitation(session, org.id, "done@x.com", used=True)
    check = await validate_invitation(session, token)
    assert check.error == ErrorKind.ALREADY_USED
    assert check.message == "Invitation has already been used"


async def test_issue_requires_admin(session, org, member):
    with pytest.raises(ServiceError) as exc:
        await issue_invitation(session, member, org.id, "eve@x.com", UserRole.USER, BASE_URL)
    assert exc.value.kind == ErrorKind.ACCESS_DENIED
    assert "ORG_ADMIN" in exc.value.message


async def test_issue_denied_for_other_org(session, org, other_org, admin):
    with pytest.raises(ServiceError) as exc:
        await issue_invitation(session, admin, other_org.id, "eve@x.com", UserRole.USER, BASE_URL)
    assert exc.value.kind == ErrorKind.ACCESS_DENIED
    assert "does not belong" in exc.value.message


async def test_issue_rejects_existing_user(session, org, admin, member):
    with pytest.raises(ServiceError) as exc:
        await issue_invitation(session, admin, org.id, "MEMBER@example.com", UserRole.USER, BASE_URL)
    assert exc.value.kind == ErrorKind.USER_EXISTS


async def test_issue_duplicate_pending(session, org, admin):
    await issue_invitation(session, admin, org.id, "frank@x.com", UserRole.USER, BASE_URL)
    with pytest.raises(ServiceError) as exc:
        await issue_invitation(session, admin, org.id, "frank@x.com", UserRole.USER, BASE_URL)
    assert exc.value.kind == ErrorKind.DUPLICATE_INVITATION


async def test_issue_allowed_again_after_expiry(session, org, admin):
    await _store_invitation(session, org.id, "gina@x.com", expires_in=-timedelta(hours=1))
    issued = await issue_invitation(session, admin, org.id, "gina@x.com", UserRole.USER, BASE_URL)
    assert (await validate_invitation(session, _token_from(issued.invite_url))).valid


async def test_accept_creates_user_and_consumes(database, session, org, admin, bob):
    issued = await issue_invitation(session, admin, org.id, "bob@x.com", UserRole.USER, BASE_URL)
    token = _token_from(issued.invite_url)

    user = await accept_invitation(session, bob, token)
    assert user.organization_id == org.id
    assert user.email == "bob@x.com"
    assert user.role == UserRole.USER
    assert user.status == "active"
    assert user.name == "Bob Builder"
    assert user.auth_user_id == "auth-bob"
    assert user.organization.name == "Org One"

    async with database.session_maker() as s:
        stored = (await s.execute(select(Invitation).where(Invitation.id == issued.invitation.id))).scalar_one()
        assert stored.used_at is not None

    with pytest.raises(ServiceError) as exc:
        await accept_invitation(session, bob, token)
    assert exc.value.kind == ErrorKind.ALREADY_USED
    assert await _count_users(database, email="bob@x.com") == 1


async def test_accept_email_mismatch(database, session, org):
    token = await _store_invitation(session, org.id, "bob@x.com")
    mallory = ExternalIdentity(id="auth-mallory", email="mallory@x.com")
    with pytest.raises(ServiceError) as exc:
        await accept_invitation(session, mallory, token)
    assert exc.value.kind == ErrorKind.EMAIL_MISMATCH
    assert await _count_users(database, auth_user_id="auth-mallory") == 0
    assert (await validate_invitation(session, token)).valid


async def test_accept_email_compare_ignores_case(session, org):
    token = await _store_invitation(session, org.id, "bob@x.com")
    user = await accept_invitation(session, ExternalIdentity(id="auth-bob", email="Bob@X.com"), token)
    assert user.email == "bob@x.com"
    assert user.name == "Bob"


async def test_accept_requires_identity(session, org):
    token = await _store_invitation(session, org.id, "bob@x.com")
    with pytest.raises(ServiceError) as exc:
        await accept_invitation(session, None, token)
    assert exc.value.kind == ErrorKind.UNAUTHENTICATED


async def test_accept_propagates_validation_errors(session, org, bob):
    expired = await _store_invitation(session, org.id, "bob@x.com", expires_in=-timedelta(days=1))
    with pytest.raises(ServiceError) as exc:
        await accept_invitation(session, bob, expired)
    assert exc.value.kind == ErrorKind.EXPIRED

    with pytest.raises(ServiceError) as exc:
        await accept_invitation(session, bob, generate_token())
    assert exc.value.kind == ErrorKind.INVALID_TOKEN


async def test_accept_rejects_onboarded_identity(session, org, member):
    token = await _store_invitation(session, org.id, "member2@example.com")
    identity = ExternalIdentity(id=member.auth_user_id, email="member2@example.com")
    with pytest.raises(ServiceError) as exc:
        await accept_invitation(session, identity, token)
    assert exc.value.kind == ErrorKind.ALREADY_ONBOARDED


async def test_accept_loses_race_when_invitation_consumed_meanwhile(database, session, org, bob, monkeypatch):
    org_id = org.id
    token = await _store_invitation(session, org_id, "bob@x.com", used=True)
    async with database.session_maker() as s:
        inv = (await s.execute(select(Invitation).where(Invitation.token_hash == hash_token(token)))).scalar_one()
        stale_claim = InvitationClaim(id=inv.id, organization_id=org_id, email="bob@x.com", role=UserRole.USER)

    # Simulate a validator that read the row before a concurrent accept committed
    async def stale_validate(db, tok):
        return InvitationCheck(True, invitation=stale_claim)

    monkeypatch.setattr(invitation_service, "validate_invitation", stale_validate)
    with pytest.raises(ServiceError) as exc:
        await accept_invitation(session, bob, token)
    assert exc.value.kind == ErrorKind.ALREADY_USED
    assert await _count_users(database, auth_user_id="auth-bob") == 0


async def test_list_pending_only_valid(session, org, admin):
    await issue_invitation(session, admin, org.id, "p1@x.com", UserRole.USER, BASE_URL)
    await _store_invitation(session, org.id, "old@x.com", expires_in=-timedelta(days=1))
    await _store_invitation(session, org.id, "used@x.com", used=True)
    pending = await list_pending_invitations(session, admin, org.id)
    assert [inv.email for inv in pending] == ["p1@x.com"]


async def test_list_pending_requires_admin(session, org, member):
    with pytest.raises(ServiceError) as exc:
        await list_pending_invitations(session, member, org.id)
    assert exc.value.kind == ErrorKind.ACCESS_DENIED


async def test_accept_rejects_email_that_already_has_user(database, session, org, member):
    token = await _store_invitation(session, org.id, "member@example.com")
    twin = ExternalIdentity(id="auth-member-twin", email="member@example.com")
    with pytest.raises(ServiceError) as exc:
        await accept_invitation(session, twin, token)
    assert exc.value.kind == ErrorKind.USER_EXISTS
    assert await _count_users(database, auth_user_id="auth-member-twin") == 0
    assert (await validate_invitation(session, token)).valid


async def test_accept_maps_email_index_violation_to_user_exists(database, session, org, member, monkeypatch):
    """A user committed with the same email after the pre-check is USER_EXISTS, not ALREADY_ONBOARDED."""
    token = await _store_invitation(session, org.id, "member@example.com")
    twin = ExternalIdentity(id="auth-member-twin", email="member@example.com")
    real_find = invitation_service.find_user_conflict
    calls = []

    async def conflict_not_yet_visible(db, auth_user_id, email):
        calls.append(email)
        if len(calls) == 1:
            return None
        return await real_find(db, auth_user_id, email)

    monkeypatch.setattr(invitation_service, "find_user_conflict", conflict_not_yet_visible)
    with pytest.raises(ServiceError) as exc:
        await accept_invitation(session, twin, token)
    assert exc.value.kind == ErrorKind.USER_EXISTS
    assert calls == ["member@example.com"]
    assert await _count_users(database, email="member@example.com") == 1
    assert (await validate_invitation(session, token)).valid


async def test_issue_token_hash_collision_is_rolled_back(database, session, org, admin, monkeypatch):
    org_id = org.id
    fixed = generate_token()
    monkeypatch.setattr(invitation_service, "generate_token", lambda: fixed)
    await issue_invitation(session, admin, org_id, "first@x.com", UserRole.USER, BASE_URL)
    with pytest.raises(ServiceError) as exc:
        await issue_invitation(session, admin, org_id, "second@x.com", UserRole.USER, BASE_URL)
    assert exc.value.kind == ErrorKind.DUPLICATE_INVITATION

    async with database.session_maker() as s:
        emails = (await s.execute(select(Invitation.email).where(Invitation.organization_id == org_id))).scalars().all()
    assert emails == ["first@x.com"]
