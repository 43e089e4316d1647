import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from condo_notify.services.identity_service import (
    AccountAlreadyExists, IdentityProviderError, SupabaseAuthClient,
)


class FakeGoTrue:
    def __init__(self):
        self.users = {"taken@example.com": "user-1"}
        self.requests = []

    async def create_user(self, request):
        body = await request.json()
        self.requests.append(("create", {k.lower(): v for k, v in request.headers.items()}, body))
        if body["email"] in self.users:
            return web.json_response({"msg": "A user with this email address has already been registered"}, status=422)
        self.users[body["email"]] = f"user-{len(self.users) + 1}"
        return web.json_response({"id": self.users[body["email"]], "email": body["email"]})

    async def list_users(self, request):
        return web.json_response({"users": [{"id": uid, "email": email} for email, uid in self.users.items()]})

    async def generate_link(self, request):
        body = await request.json()
        self.requests.append(("link", dict(request.headers), body))
        if body["email"] not in self.users:
            return web.json_response({"msg": "User not found"}, status=404)
        return web.json_response({"properties": {"action_link": f"http://auth.test/verify?to={body['redirect_to']}"}})


@pytest_asyncio.fixture
async def gotrue():
    fake = FakeGoTrue()
    app = web.Application()
    app.router.add_post("/auth/v1/admin/users", fake.create_user)
    app.router.add_get("/auth/v1/admin/users", fake.list_users)
    app.router.add_post("/auth/v1/admin/generate_link", fake.generate_link)
    server = TestServer(app)
    await server.start_server()
    yield fake, SupabaseAuthClient(str(server.make_url("")), "service-role-key", timeout=5)
    await server.close()


@pytest.mark.asyncio
async def test_create_account_sends_service_key(gotrue):
    fake, client = gotrue

    account_id = await client.create_account("new@example.com", {"full_name": "Ana"})

    assert account_id == fake.users["new@example.com"]
    _, headers, body = fake.requests[0]
    assert headers["apikey"] == "service-role-key"
    assert headers["authorization"] == "Bearer service-role-key"
    assert body["email_confirm"] is True
    assert body["user_metadata"] == {"full_name": "Ana"}


@pytest.mark.asyncio
async def test_existing_email_raises_already_exists(gotrue):
    _, client = gotrue

    with pytest.raises(AccountAlreadyExists):
        await client.create_account("taken@example.com", {})


@pytest.mark.asyncio
async def test_find_account_by_email_is_case_insensitive(gotrue):
    _, client = gotrue

    assert await client.find_account_by_email("TAKEN@example.com") == "user-1"
    assert await client.find_account_by_email("ghost@example.com") is None


@pytest.mark.asyncio
async def test_generate_sign_in_link(gotrue):
    fake, client = gotrue

    link = await client.generate_sign_in_link("taken@example.com", "https://app.test/resident/occurrences/1")

    assert link == "http://auth.test/verify?to=https://app.test/resident/occurrences/1"
    assert fake.requests[-1][2]["type"] == "magiclink"

    with pytest.raises(IdentityProviderError):
        await client.generate_sign_in_link("ghost@example.com", "https://app.test")


@pytest.mark.asyncio
async def test_unreachable_identity_provider():
    client = SupabaseAuthClient("http://127.0.0.1:1", "key", timeout=2)

    with pytest.raises(IdentityProviderError):
        await client.create_account("ana@example.com", {})
