"""Base WhatsApp provider interface"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Any, Dict, List, Tuple

import aiohttp

from condo_notify.config import config

SNIPPET_SIZE = 300


@dataclass
class ProviderSettings:
    """Connection settings taken from the active WhatsApp config"""
    api_url: str
    api_key: str
    instance_id: str = ""


@dataclass
class SendResult:
    """Unified send result from any provider"""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    debug: Dict[str, Any] = field(default_factory=dict)


def clean_phone(phone: str) -> str:
    """Strip everything but digits"""
    return re.sub(r"\D", "", phone or "")


def mask_secret(text: str, secret: str) -> str:
    """Hide a credential that providers expect inside the URL"""
    if not secret:
        return text
    visible = secret[:4]
    return text.replace(secret, f"{visible}***")


class WhatsAppProvider(ABC):
    """
    Abstract WhatsApp provider.

    Subclasses implement the wire protocol in the `_send_*` coroutines and are
    free to raise on transport problems: the public methods convert any
    aiohttp/timeout error into a failed SendResult, so callers never see an
    exception for an ordinary provider failure.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging"""
        pass

    @property
    def tag(self) -> str:
        return f"[{self.name}]"

    @abstractmethod
    async def _send_text(self, phone: str, message: str, settings: ProviderSettings) -> SendResult:
        pass

    @abstractmethod
    async def _send_image(self, phone: str, message: str, image_url: str, settings: ProviderSettings) -> SendResult:
        pass

    async def _send_template(
        self,
        phone: str,
        template_name: str,
        language: str,
        params: List[str],
        settings: ProviderSettings,
    ) -> SendResult:
        return SendResult(
            success=False,
            error=f"Provedor {self.name} não suporta templates WABA",
            error_code="NOT_SUPPORTED",
        )

    async def _test_connection(self, settings: ProviderSettings) -> SendResult:
        return SendResult(
            success=False,
            error=f"Teste de conexão não disponível para {self.name}",
            error_code="NOT_SUPPORTED",
        )

    async def send_text(self, phone: str, message: str, settings: ProviderSettings) -> SendResult:
        phone_clean = clean_phone(phone)
        logging.info(f"{self.tag} Sending message to: {phone_clean}")
        return await self._guard(self._send_text(phone_clean, message, settings))

    async def send_image(self, phone: str, message: str, image_url: str, settings: ProviderSettings) -> SendResult:
        phone_clean = clean_phone(phone)
        logging.info(f"{self.tag} Sending image to: {phone_clean}")
        return await self._guard(self._send_image(phone_clean, message, image_url, settings))

    async def send_template(
        self,
        phone: str,
        template_name: str,
        language: str,
        params: List[str],
        settings: ProviderSettings,
    ) -> SendResult:
        phone_clean = clean_phone(phone)
        logging.info(f"{self.tag} Sending template '{template_name}' to: {phone_clean}")
        return await self._guard(
            self._send_template(phone_clean, template_name, language, params, settings)
        )

    async def test_connection(self, settings: ProviderSettings) -> SendResult:
        logging.info(f"{self.tag} Testing connection to: {settings.api_url}")
        return await self._guard(self._test_connection(settings))

    async def _guard(self, coro) -> SendResult:
        try:
            return await coro
        except asyncio.TimeoutError:
            logging.warning(f"{self.tag} Request timed out after {config.HTTP_TIMEOUT_SECONDS}s")
            return SendResult(
                success=False,
                error=f"Tempo limite excedido ({config.HTTP_TIMEOUT_SECONDS:.0f}s)",
                error_code="TIMEOUT",
            )
        except (aiohttp.ClientError, ValueError) as e:
            logging.error(f"{self.tag} Connection error: {e}")
            return SendResult(success=False, error=f"Erro de conexão: {e}", error_code="CONNECTION_ERROR")

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> Tuple[int, str]:
        """Perform one HTTP call and return (status, raw text)"""
        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)

        async with aiohttp.ClientSession() as session:
            async with session.request(
                method,
                url,
                json=json,
                params=params,
                headers=request_headers,
                timeout=aiohttp.ClientTimeout(total=config.HTTP_TIMEOUT_SECONDS),
            ) as resp:
                text = await resp.text()
                logging.info(f"{self.tag} Response status: {resp.status}")
                logging.debug(f"{self.tag} Response: {text[:SNIPPET_SIZE]}")
                return resp.status, text

    @staticmethod
    def _debug(endpoint: str, status: Optional[int], text: str, payload: Any) -> Dict[str, Any]:
        return {
            "endpoint": endpoint,
            "status": status,
            "response": text,
            "payload": payload,
        }

    @staticmethod
    def _parse_json(text: str) -> Optional[Any]:
        try:
            return json.loads(text) if text else None
        except json.JSONDecodeError:
            return None
