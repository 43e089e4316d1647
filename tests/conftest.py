import os

# Config raises at import when the identity provider is not configured
os.environ.setdefault("AUTH_URL", "http://auth.test")
os.environ.setdefault("AUTH_SERVICE_KEY", "test-service-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from condo_notify.database.core import Base
from condo_notify.database.models import (
    Condominium, Block, Apartment, Resident, NotificationSent, WhatsAppConfig,
)
from condo_notify.services.identity_service import IdentityProvider, AccountAlreadyExists


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_session(session_factory):
    async with session_factory() as session:
        yield session


class FakeProviderAPI:
    """Records every request and answers with a configurable body"""

    def __init__(self):
        self.requests = []
        self.status = 200
        self.body: Any = {"messageId": "abc123"}
        self.html: Optional[str] = None
        self.url = None

    async def handle(self, request: web.Request) -> web.Response:
        raw = await request.text()
        self.requests.append({
            "method": request.method,
            "path": request.path,
            "query": dict(request.query),
            "headers": {k.lower(): v for k, v in request.headers.items()},
            "body": raw,
        })
        if self.html is not None:
            return web.Response(text=self.html, status=self.status, content_type="text/html")
        return web.json_response(self.body, status=self.status)

    @property
    def last(self) -> Dict[str, Any]:
        return self.requests[-1]


@pytest_asyncio.fixture
async def fake_provider():
    fake = FakeProviderAPI()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", fake.handle)
    server = TestServer(app)
    await server.start_server()
    fake.url = str(server.make_url("")).rstrip("/")
    yield fake
    await server.close()


class FakeIdentityProvider(IdentityProvider):
    """In-memory identity provider; `existing` simulates accounts created elsewhere"""

    def __init__(self, fail_create: bool = False, fail_link: bool = False):
        self.accounts: Dict[str, str] = {}
        self.create_calls = []
        self.link_calls = []
        self.fail_create = fail_create
        self.fail_link = fail_link
        # Accounts registered by a concurrent request: create reports AlreadyExists
        self.existing: Dict[str, str] = {}

    async def create_account(self, email, metadata):
        self.create_calls.append((email, metadata))
        if self.fail_create:
            raise RuntimeError("identity provider unavailable")
        if email in self.accounts or email in self.existing:
            raise AccountAlreadyExists(email)
        account_id = str(uuid.uuid4())
        self.accounts[email] = account_id
        return account_id

    async def find_account_by_email(self, email):
        return self.accounts.get(email) or self.existing.get(email)

    async def generate_sign_in_link(self, email, redirect_to):
        self.link_calls.append((email, redirect_to))
        if self.fail_link:
            raise RuntimeError("link generation failed")
        return f"http://auth.test/verify?email={email}&redirect_to={redirect_to}"


@pytest.fixture
def identity():
    return FakeIdentityProvider()


async def create_notification(
    session: AsyncSession,
    sent_at: datetime = None,
    email: Optional[str] = "ana@example.com",
    user_id: Optional[str] = None,
    occurrence_id: str = "occ-1",
) -> NotificationSent:
    condo = Condominium(name="Residencial Aurora")
    session.add(condo)
    await session.flush()
    block = Block(condominium_id=condo.id, name="Bloco A")
    session.add(block)
    await session.flush()
    apartment = Apartment(block_id=block.id, number="101")
    session.add(apartment)
    await session.flush()
    resident = Resident(
        apartment_id=apartment.id,
        full_name="Ana Souza",
        email=email,
        phone="11999999999",
        user_id=user_id,
    )
    session.add(resident)
    await session.flush()

    notification = NotificationSent(
        resident_id=resident.id,
        occurrence_id=occurrence_id,
        message_content="Nova ocorrência",
        secure_link_token=str(uuid.uuid4()),
        sent_at=sent_at or datetime.now(timezone.utc),
    )
    session.add(notification)
    await session.commit()
    return notification


async def create_whatsapp_config(
    session: AsyncSession,
    api_url: str,
    provider: str = "zpro",
    api_key: str = "secret-token",
    instance_id: str = "instance-1",
    app_url: Optional[str] = None,
) -> WhatsAppConfig:
    wa_config = WhatsAppConfig(
        provider=provider,
        api_url=api_url,
        api_key=api_key,
        instance_id=instance_id,
        app_url=app_url,
        is_active=True,
    )
    session.add(wa_config)
    await session.commit()
    return wa_config


def fail_commits_with(monkeypatch, session: AsyncSession, model):
    """Make every commit carrying a new `model` row fail like a lost database"""
    real_commit = session.commit

    async def commit():
        if any(isinstance(obj, model) for obj in session.new):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        await real_commit()

    monkeypatch.setattr(session, "commit", commit)
