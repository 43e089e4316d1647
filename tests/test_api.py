import uuid
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer
from sqlalchemy import select

from condo_notify.config import config
from condo_notify.cron import PURGE_JOB_NAME, REMINDER_JOB_NAME
from condo_notify.database.models import JobExecutionLog, WhatsAppNotificationLog
from condo_notify.main import create_app
from conftest import create_notification, create_whatsapp_config

ADMIN = {"X-Admin-Key": "test-admin-key"}


@pytest_asyncio.fixture
async def client(session_factory, identity):
    app = create_app(session_factory=session_factory, identity=identity)
    async with TestClient(TestServer(app)) as client:
        yield client


# --- Dispatch ---

@pytest.mark.asyncio
async def test_dispatch_requires_service_key(client):
    resp = await client.post("/dispatch", json={"templateSlug": "payment_confirmed", "phone": "11999999999"})
    assert resp.status == 401

    resp = await client.post(
        "/dispatch",
        json={"templateSlug": "payment_confirmed", "phone": "11999999999"},
        headers={"Authorization": "Bearer wrong-key"},
    )
    assert resp.status == 401


@pytest.mark.asyncio
async def test_dispatch_sends_and_logs(client, session_factory, fake_provider):
    async with session_factory() as session:
        await create_whatsapp_config(session, fake_provider.url)

    resp = await client.post(
        "/dispatch",
        json={"templateSlug": "payment_confirmed", "phone": "11999999999", "variables": {"valor": "R$ 50,00"}},
        headers=ADMIN,
    )

    assert resp.status == 200
    assert await resp.json() == {"success": True, "messageId": "abc123"}
    async with session_factory() as session:
        logs = (await session.execute(select(WhatsAppNotificationLog))).scalars().all()
        assert len(logs) == 1
        assert logs[0].template_name == "payment_confirmed"


@pytest.mark.asyncio
async def test_dispatch_failure_is_a_result_not_an_http_error(client):
    resp = await client.post(
        "/dispatch", json={"templateSlug": "payment_confirmed", "phone": "11999999999"}, headers=ADMIN,
    )

    assert resp.status == 200
    assert await resp.json() == {"success": False, "error": "not configured"}


@pytest.mark.asyncio
async def test_dispatch_rejects_invalid_body(client):
    resp = await client.post("/dispatch", json={"templateSlug": "", "phone": "abc"}, headers=ADMIN)

    assert resp.status == 400
    error = (await resp.json())["error"]
    assert "templateSlug" in error
    assert "phone" in error


@pytest.mark.asyncio
async def test_dispatch_accepts_free_form_phone(client, session_factory, fake_provider):
    async with session_factory() as session:
        await create_whatsapp_config(session, fake_provider.url)

    resp = await client.post(
        "/dispatch", json={"templateSlug": "trial_ending", "phone": "11.99999-9999"}, headers=ADMIN,
    )

    assert resp.status == 200
    assert (await resp.json())["success"] is True
    async with session_factory() as session:
        log = (await session.execute(select(WhatsAppNotificationLog))).scalar_one()
        assert log.phone == "11999999999"

    resp = await client.post(
        "/dispatch", json={"templateSlug": "trial_ending", "phone": "ramal 1234"}, headers=ADMIN,
    )
    assert resp.status == 400
    assert "phone" in (await resp.json())["error"]


# --- Token verification ---

@pytest.mark.asyncio
async def test_verify_token_missing_or_malformed(client):
    resp = await client.post("/verify-token", json={})
    assert resp.status == 400
    assert await resp.json() == {"error": "Token não fornecido"}

    resp = await client.post("/verify-token", json={"token": "not-a-uuid"})
    assert resp.status == 400
    assert await resp.json() == {"error": "Token inválido"}

    resp = await client.post("/verify-token", data="{broken")
    assert resp.status == 400


@pytest.mark.asyncio
async def test_verify_token_unknown(client):
    resp = await client.post("/verify-token", json={"token": str(uuid.uuid4())})

    assert resp.status == 404
    assert await resp.json() == {"error": "Link inválido"}


@pytest.mark.asyncio
async def test_verify_token_expired(client, session_factory):
    async with session_factory() as session:
        notification = await create_notification(session, sent_at=datetime(2020, 1, 1, tzinfo=timezone.utc))

    resp = await client.post("/verify-token", json={"token": notification.secure_link_token})

    assert resp.status == 410
    assert "expirado" in (await resp.json())["error"]


@pytest.mark.asyncio
async def test_verify_token_success(client, session_factory):
    async with session_factory() as session:
        notification = await create_notification(session, occurrence_id="occ-9")

    resp = await client.post(
        "/verify-token",
        json={"token": notification.secure_link_token},
        headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "User-Agent": "Mobile Safari"},
    )

    assert resp.status == 200
    data = await resp.json()
    assert data["success"] is True
    assert data["isNewUser"] is True
    assert data["occurrenceId"] == "occ-9"
    assert data["resident"]["fullName"] == "Ana Souza"
    assert data["magicLink"]


@pytest.mark.asyncio
async def test_verify_token_is_rate_limited(session_factory, identity, monkeypatch):
    monkeypatch.setattr(config, "RATE_LIMIT_REQUESTS", 2)
    app = create_app(session_factory=session_factory, identity=identity)

    async with TestClient(TestServer(app)) as client:
        statuses = []
        for _ in range(3):
            resp = await client.post("/verify-token", json={"token": str(uuid.uuid4())})
            statuses.append(resp.status)

        assert statuses == [404, 404, 429]
        assert resp.headers["Retry-After"] == str(config.RATE_LIMIT_WINDOW)

        # Other endpoints are not limited
        resp = await client.post("/webhooks/payments", json={"type": "payment"})
        assert resp.status == 200


# --- Webhooks ---

@pytest.mark.asyncio
async def test_payment_webhook_is_acknowledged(client):
    resp = await client.post("/webhooks/payments", json={"type": "payment", "data": {"id": "123"}})

    assert resp.status == 200
    assert await resp.json() == {"received": True}


@pytest.mark.asyncio
async def test_whatsapp_status_webhook(client, session_factory):
    async with session_factory() as session:
        notification = await create_notification(session)
        notification.provider_message_id = "wamid.5"
        await session.commit()

    resp = await client.post("/webhooks/whatsapp", json={"messageId": "wamid.5", "status": "entregue"})
    data = await resp.json()
    assert data["status"] == "delivered"
    assert data["updated"] == 1

    resp = await client.post("/webhooks/whatsapp", json={"event": "qrcode"})
    assert (await resp.json())["message"] == "No message ID to process"


# --- Admin ---

@pytest.mark.asyncio
async def test_admin_requires_service_key(client):
    resp = await client.get("/admin/whatsapp-config")
    assert resp.status == 401
    assert await resp.json() == {"error": "Não autorizado"}


@pytest.mark.asyncio
async def test_admin_whatsapp_config_lifecycle(client):
    resp = await client.get("/admin/whatsapp-config", headers=ADMIN)
    assert resp.status == 404

    resp = await client.put(
        "/admin/whatsapp-config",
        json={"provider": "ZAPI", "api_url": "https://api.z-api.io/", "api_key": "abcdef123", "instance_id": "i1"},
        headers=ADMIN,
    )
    assert resp.status == 200
    saved = await resp.json()
    assert saved["provider"] == "zapi"
    assert saved["api_url"] == "https://api.z-api.io"
    assert saved["api_key"] == "abcd***"

    resp = await client.get("/admin/whatsapp-config", headers=ADMIN)
    assert (await resp.json())["id"] == saved["id"]

    resp = await client.delete("/admin/whatsapp-config", headers=ADMIN)
    assert resp.status == 200
    resp = await client.get("/admin/whatsapp-config", headers=ADMIN)
    assert resp.status == 404


@pytest.mark.asyncio
async def test_admin_whatsapp_config_rejects_unknown_provider(client):
    resp = await client.put(
        "/admin/whatsapp-config",
        json={"provider": "twilio", "api_url": "https://x.test", "api_key": "k"},
        headers=ADMIN,
    )
    assert resp.status == 400


@pytest.mark.asyncio
async def test_admin_template_update_and_reset(client):
    resp = await client.post("/admin/templates/payment_confirmed/reset", headers=ADMIN)
    assert resp.status == 200

    resp = await client.put(
        "/admin/templates/payment_confirmed",
        json={"content": "Pago {valor} {extra}"},
        headers=ADMIN,
    )
    assert resp.status == 200
    data = await resp.json()
    assert data["content"] == "Pago {valor} {extra}"
    assert data["undeclared"] == ["extra"]

    resp = await client.post("/admin/templates/payment_confirmed/reset", headers=ADMIN)
    assert "{extra}" not in (await resp.json())["content"]

    resp = await client.post("/admin/templates/unknown_slug/reset", headers=ADMIN)
    assert resp.status == 404
    resp = await client.put("/admin/templates/unknown_slug", json={"content": "x"}, headers=ADMIN)
    assert resp.status == 404


@pytest.mark.asyncio
async def test_admin_job_pause_and_manual_run(client, session_factory):
    resp = await client.post(f"/admin/jobs/{PURGE_JOB_NAME}/pause", json={"paused_by": "sindico"}, headers=ADMIN)
    assert (await resp.json())["paused"] is True

    resp = await client.post(f"/admin/jobs/{PURGE_JOB_NAME}/run", headers=ADMIN)
    assert (await resp.json())["status"] == "skipped"

    resp = await client.post(f"/admin/jobs/{PURGE_JOB_NAME}/resume", headers=ADMIN)
    assert (await resp.json())["paused"] is False

    resp = await client.post(f"/admin/jobs/{PURGE_JOB_NAME}/run", json={"dry_run": True}, headers=ADMIN)
    data = await resp.json()
    assert data["status"] == "success"
    assert data["trigger_type"] == "manual"
    assert data["result"]["dryRun"] is True

    resp = await client.get("/admin/jobs", headers=ADMIN)
    assert await resp.json() == [
        {"function_name": REMINDER_JOB_NAME, "paused": False, "paused_at": None, "paused_by": None},
        {"function_name": PURGE_JOB_NAME, "paused": False, "paused_at": None, "paused_by": None},
    ]

    async with session_factory() as session:
        runs = (await session.execute(select(JobExecutionLog.status))).scalars().all()
        assert sorted(runs) == ["skipped", "success"]


@pytest.mark.asyncio
async def test_admin_unknown_job(client):
    resp = await client.post("/admin/jobs/nope/run", headers=ADMIN)
    assert resp.status == 404


@pytest.mark.asyncio
async def test_admin_logs_listing(client):
    await client.post("/verify-token", json={"token": str(uuid.uuid4())})

    resp = await client.get("/admin/logs/access?success=false", headers=ADMIN)
    entries = await resp.json()
    assert len(entries) == 1
    assert entries[0]["error_message"] == "not_found"

    resp = await client.get("/admin/logs/deliveries?limit=abc", headers=ADMIN)
    assert resp.status == 400
