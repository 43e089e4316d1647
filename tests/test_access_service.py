import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, func

from condo_notify.config import config
from condo_notify.database.models import (
    MagicLinkAccessLog, NotificationSent, Resident, UserRoleAssignment, AppRole,
)
from condo_notify.services.access_service import AccessTokenVerifier, AccessOutcome, placeholder_email
from conftest import FakeIdentityProvider, create_notification, create_whatsapp_config, fail_commits_with

SENT_AT = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def clock_at(moment):
    return lambda: moment


async def access_logs(session):
    result = await session.execute(select(MagicLinkAccessLog).order_by(MagicLinkAccessLog.id))
    return result.scalars().all()


@pytest.mark.asyncio
async def test_unknown_token_is_not_found(async_session, identity):
    verifier = AccessTokenVerifier(async_session, identity)

    result = await verifier.verify(str(uuid.uuid4()), "10.0.0.1", "pytest")

    assert result.outcome == AccessOutcome.not_found
    assert result.http_status == 404
    assert "error" in result.to_response()
    logs = await access_logs(async_session)
    assert len(logs) == 1
    assert logs[0].success is False
    assert logs[0].resident_id is None
    assert identity.create_calls == []


@pytest.mark.asyncio
async def test_expiry_boundary(async_session, identity):
    notification = await create_notification(async_session, sent_at=SENT_AT)
    ttl = timedelta(days=config.ACCESS_TOKEN_TTL_DAYS)

    just_before = AccessTokenVerifier(async_session, identity, clock=clock_at(SENT_AT + ttl - timedelta(seconds=1)))
    result = await just_before.verify(notification.secure_link_token)
    assert result.outcome == AccessOutcome.success

    just_after = AccessTokenVerifier(async_session, identity, clock=clock_at(SENT_AT + ttl + timedelta(seconds=1)))
    result = await just_after.verify(notification.secure_link_token)
    assert result.outcome == AccessOutcome.expired
    assert result.http_status == 410


@pytest.mark.asyncio
async def test_expired_token_does_not_touch_identity(async_session, identity):
    notification = await create_notification(async_session, sent_at=SENT_AT)
    verifier = AccessTokenVerifier(async_session, identity, clock=clock_at(SENT_AT + timedelta(days=30)))

    result = await verifier.verify(notification.secure_link_token, "10.0.0.1", "pytest")

    assert result.outcome == AccessOutcome.expired
    assert identity.create_calls == []
    assert identity.link_calls == []
    resident = await async_session.get(Resident, notification.resident_id)
    assert resident.user_id is None
    logs = await access_logs(async_session)
    assert logs[-1].error_message == "expired"
    assert logs[-1].resident_id == notification.resident_id


@pytest.mark.asyncio
async def test_first_open_creates_and_links_account(async_session, identity):
    notification = await create_notification(async_session, occurrence_id="occ-42")
    verifier = AccessTokenVerifier(async_session, identity)

    result = await verifier.verify(notification.secure_link_token, "10.0.0.1", "pytest")

    assert result.outcome == AccessOutcome.success
    assert result.is_new_user is True
    response = result.to_response()
    assert response["success"] is True
    assert response["occurrenceId"] == "occ-42"
    assert response["resident"] == {
        "id": notification.resident_id,
        "fullName": "Ana Souza",
        "apartmentNumber": "101",
        "blockName": "Bloco A",
        "condominiumName": "Residencial Aurora",
    }
    assert response["magicLink"].startswith("http://auth.test/verify")

    resident = await async_session.get(Resident, notification.resident_id)
    assert resident.user_id == identity.accounts["ana@example.com"]

    role = (await async_session.execute(
        select(UserRoleAssignment).where(UserRoleAssignment.user_id == resident.user_id)
    )).scalar_one()
    assert role.role == AppRole.morador.value

    email, redirect = identity.link_calls[0]
    assert email == "ana@example.com"
    assert redirect == f"{config.APP_BASE_URL}/resident/occurrences/occ-42"

    logs = await access_logs(async_session)
    assert logs[-1].success is True
    assert logs[-1].is_new_user is True
    assert logs[-1].user_id == resident.user_id
    assert logs[-1].redirect_url == redirect


@pytest.mark.asyncio
async def test_repeat_open_is_idempotent(async_session, identity):
    notification = await create_notification(async_session)
    verifier = AccessTokenVerifier(async_session, identity)

    first = await verifier.verify(notification.secure_link_token)
    second = await verifier.verify(notification.secure_link_token)
    third = await verifier.verify(notification.secure_link_token)

    assert first.is_new_user is True
    assert second.is_new_user is False
    assert third.is_new_user is False
    assert len(identity.create_calls) == 1


@pytest.mark.asyncio
async def test_already_linked_resident_never_creates_account(async_session, identity):
    notification = await create_notification(async_session, user_id="existing-user")
    verifier = AccessTokenVerifier(async_session, identity)

    for _ in range(2):
        result = await verifier.verify(notification.secure_link_token)
        assert result.outcome == AccessOutcome.success
        assert result.is_new_user is False

    assert identity.create_calls == []


@pytest.mark.asyncio
async def test_account_already_exists_falls_back_to_lookup(async_session, identity):
    notification = await create_notification(async_session)
    identity.existing["ana@example.com"] = "account-from-other-request"
    verifier = AccessTokenVerifier(async_session, identity)

    result = await verifier.verify(notification.secure_link_token)

    assert result.outcome == AccessOutcome.success
    assert result.is_new_user is False
    resident = await async_session.get(Resident, notification.resident_id)
    assert resident.user_id == "account-from-other-request"


@pytest.mark.asyncio
async def test_concurrent_first_opens_converge_on_one_account(async_session, session_factory, identity):
    notification = await create_notification(async_session)
    resident_id = notification.resident_id
    # Keep the unlinked resident in this session's identity map, as a slower request would
    stale = await AccessTokenVerifier(async_session, identity)._find_notification(notification.secure_link_token)
    assert stale.resident.user_id is None
    await async_session.commit()

    # Another request links the resident in the meantime
    async with session_factory() as other:
        resident = await other.get(Resident, resident_id)
        resident.user_id = "winner-account"
        await other.commit()
    identity.existing["ana@example.com"] = "winner-account"

    result = await AccessTokenVerifier(async_session, identity).verify(notification.secure_link_token)

    assert result.outcome == AccessOutcome.success
    async with session_factory() as check:
        linked = await check.get(Resident, resident_id)
        assert linked.user_id == "winner-account"
    logs = await access_logs(async_session)
    assert logs[-1].user_id == "winner-account"


@pytest.mark.asyncio
async def test_resident_without_email_gets_placeholder(async_session, identity):
    notification = await create_notification(async_session, email=None)
    verifier = AccessTokenVerifier(async_session, identity)

    result = await verifier.verify(notification.secure_link_token)

    assert result.outcome == AccessOutcome.success
    expected = placeholder_email(notification.resident_id)
    assert expected.endswith(f"@{config.PLACEHOLDER_EMAIL_DOMAIN}")
    assert identity.create_calls[0][0] == expected
    assert identity.link_calls[0][0] == expected


@pytest.mark.asyncio
async def test_identity_failure_is_internal_error_without_link(async_session):
    identity = FakeIdentityProvider(fail_create=True)
    notification = await create_notification(async_session)
    resident_id = notification.resident_id
    verifier = AccessTokenVerifier(async_session, identity)

    result = await verifier.verify(notification.secure_link_token)

    assert result.outcome == AccessOutcome.internal_error
    assert result.http_status == 500
    assert result.to_response() == {"error": "Erro interno do servidor"}
    resident = await async_session.get(Resident, resident_id)
    assert resident.user_id is None
    logs = await access_logs(async_session)
    assert logs[-1].success is False


@pytest.mark.asyncio
async def test_identity_failure_still_records_the_open(async_session):
    notification = await create_notification(async_session, sent_at=SENT_AT)
    notification_id = notification.id
    opened_at = SENT_AT + timedelta(hours=2)
    verifier = AccessTokenVerifier(async_session, FakeIdentityProvider(fail_create=True), clock=clock_at(opened_at))

    result = await verifier.verify(notification.secure_link_token, "10.0.0.9", "Mobile Safari")

    assert result.outcome == AccessOutcome.internal_error
    stored = await async_session.get(NotificationSent, notification_id)
    assert stored.read_at.replace(tzinfo=timezone.utc) == opened_at
    assert stored.ip_address == "10.0.0.9"
    assert stored.user_agent == "Mobile Safari"


@pytest.mark.asyncio
async def test_link_generation_failure_is_internal_error(async_session):
    identity = FakeIdentityProvider(fail_link=True)
    notification = await create_notification(async_session)

    result = await AccessTokenVerifier(async_session, identity).verify(notification.secure_link_token)

    assert result.outcome == AccessOutcome.internal_error
    count = await async_session.scalar(select(func.count()).select_from(MagicLinkAccessLog))
    assert count == 1


@pytest.mark.asyncio
async def test_elevated_role_is_kept_by_default(async_session, identity, monkeypatch):
    monkeypatch.setattr(config, "RESIDENT_ROLE_OVERRIDE", False)
    notification = await create_notification(async_session, user_id="manager-account")
    async_session.add(UserRoleAssignment(user_id="manager-account", role=AppRole.sindico.value))
    await async_session.commit()

    await AccessTokenVerifier(async_session, identity).verify(notification.secure_link_token)

    role = (await async_session.execute(
        select(UserRoleAssignment).where(UserRoleAssignment.user_id == "manager-account")
    )).scalar_one()
    assert role.role == AppRole.sindico.value


@pytest.mark.asyncio
async def test_role_override_when_enabled(async_session, identity, monkeypatch):
    monkeypatch.setattr(config, "RESIDENT_ROLE_OVERRIDE", True)
    notification = await create_notification(async_session, user_id="manager-account")
    async_session.add(UserRoleAssignment(user_id="manager-account", role=AppRole.sindico.value))
    await async_session.commit()

    await AccessTokenVerifier(async_session, identity).verify(notification.secure_link_token)

    role = (await async_session.execute(
        select(UserRoleAssignment).where(UserRoleAssignment.user_id == "manager-account")
    )).scalar_one()
    assert role.role == AppRole.morador.value


@pytest.mark.asyncio
async def test_read_metadata_keeps_first_open(async_session, identity):
    notification = await create_notification(async_session, sent_at=SENT_AT)
    first_open = SENT_AT + timedelta(hours=1)
    second_open = SENT_AT + timedelta(hours=5)

    await AccessTokenVerifier(async_session, identity, clock=clock_at(first_open)).verify(
        notification.secure_link_token, "10.0.0.1", "agent-1",
    )
    await AccessTokenVerifier(async_session, identity, clock=clock_at(second_open)).verify(
        notification.secure_link_token, "10.0.0.2", "agent-2",
    )

    stored = await async_session.get(NotificationSent, notification.id)
    assert stored.read_at.replace(tzinfo=timezone.utc) == first_open
    assert stored.ip_address == "10.0.0.2"
    assert stored.user_agent == "agent-2"


@pytest.mark.asyncio
async def test_redirect_uses_configured_app_url(async_session, identity):
    await create_whatsapp_config(async_session, "http://provider.test", app_url="https://condo.example.com")
    notification = await create_notification(async_session, occurrence_id="occ-7")

    result = await AccessTokenVerifier(async_session, identity).verify(notification.secure_link_token)

    assert result.redirect_url == "https://condo.example.com/resident/occurrences/occ-7"


@pytest.mark.asyncio
async def test_audit_write_failure_does_not_change_the_outcome(async_session, identity, monkeypatch):
    notification = await create_notification(async_session, sent_at=SENT_AT)
    notification_id = notification.id
    resident_id = notification.resident_id
    opened_at = SENT_AT + timedelta(hours=1)
    fail_commits_with(monkeypatch, async_session, MagicLinkAccessLog)

    result = await AccessTokenVerifier(async_session, identity, clock=clock_at(opened_at)).verify(
        notification.secure_link_token, "10.0.0.1", "agent-1",
    )

    assert result.outcome == AccessOutcome.success
    assert result.magic_link
    assert await access_logs(async_session) == []
    # The session survives the failed audit insert
    stored = await async_session.get(NotificationSent, notification_id)
    assert stored.read_at.replace(tzinfo=timezone.utc) == opened_at
    assert stored.ip_address == "10.0.0.1"
    user_id = await async_session.scalar(select(Resident.user_id).where(Resident.id == resident_id))
    assert user_id == identity.accounts["ana@example.com"]
