"""
Identity provider collaborator (Supabase Auth / GoTrue admin API)
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

import aiohttp

from condo_notify.config import config


class IdentityProviderError(Exception):
    """Unexpected failure talking to the identity provider"""


class AccountAlreadyExists(Exception):
    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Account already registered: {email}")


class IdentityProvider(ABC):
    @abstractmethod
    async def create_account(self, email: str, metadata: Dict[str, Any]) -> str:
        """Create a confirmed account and return its id; raises AccountAlreadyExists"""
        pass

    @abstractmethod
    async def find_account_by_email(self, email: str) -> Optional[str]:
        pass

    @abstractmethod
    async def generate_sign_in_link(self, email: str, redirect_to: str) -> str:
        """One-time passwordless sign-in URL"""
        pass


class SupabaseAuthClient(IdentityProvider):
    """
    Admin client for the GoTrue API.

    Uses the service role key, so it must only run server side.
    """

    PER_PAGE = 1000

    def __init__(self, base_url: str = None, service_key: str = None, timeout: float = None):
        self.base_url = (base_url or config.AUTH_URL).rstrip("/")
        self.service_key = service_key or config.AUTH_SERVICE_KEY
        self.timeout = aiohttp.ClientTimeout(total=timeout or config.HTTP_TIMEOUT_SECONDS)

    @property
    def headers(self) -> dict:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }

    async def _call(self, method: str, path: str, json: dict = None, params: dict = None):
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(method, url, json=json, params=params, headers=self.headers) as resp:
                    data = await resp.json(content_type=None)
                    return resp.status, data or {}
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logging.error(f"Identity provider request failed ({method} {path}): {e}")
            raise IdentityProviderError(str(e)) from e

    async def create_account(self, email: str, metadata: Dict[str, Any]) -> str:
        status, data = await self._call(
            "POST",
            "/auth/v1/admin/users",
            json={"email": email, "email_confirm": True, "user_metadata": metadata},
        )
        if status in (200, 201) and data.get("id"):
            logging.info(f"Identity account created for {email}: {data['id']}")
            return data["id"]

        message = str(data.get("msg") or data.get("message") or data.get("error_description") or data)
        if status == 422 or "already" in message.lower():
            raise AccountAlreadyExists(email)
        raise IdentityProviderError(f"create_account failed ({status}): {message}")

    async def find_account_by_email(self, email: str) -> Optional[str]:
        status, data = await self._call(
            "GET",
            "/auth/v1/admin/users",
            params={"page": 1, "per_page": self.PER_PAGE},
        )
        if status != 200:
            raise IdentityProviderError(f"list users failed ({status})")

        wanted = email.lower()
        for user in data.get("users", []):
            if (user.get("email") or "").lower() == wanted:
                return user.get("id")
        return None

    async def generate_sign_in_link(self, email: str, redirect_to: str) -> str:
        status, data = await self._call(
            "POST",
            "/auth/v1/admin/generate_link",
            json={"type": "magiclink", "email": email, "redirect_to": redirect_to},
        )
        link = (data.get("properties") or {}).get("action_link") or data.get("action_link")
        if status != 200 or not link:
            raise IdentityProviderError(f"generate_link failed ({status})")
        return link
