"""Z-PRO (AtenderChat) provider - legacy /params/ API and WABA endpoints"""

import base64
import logging
import re
import time
import uuid
from typing import Optional, List

import aiohttp

from condo_notify.config import config
from .base import WhatsAppProvider, ProviderSettings, SendResult, mask_secret

WABA_PATH = "/v2/api/external/"
EMBEDDED_INSTANCE = "zpro-embedded"
PING_NUMBER = "5511999999999"

MESSAGE_ID_KEYS = ("id", "messageId", "message_id", "msgId", "zapiMessageId", "wamid")


def is_waba_url(url: str) -> bool:
    """WABA (official Business API) URLs carry /v2/api/external/{uuid}"""
    return WABA_PATH in url


def extract_waba_external_key(url: str) -> Optional[str]:
    match = re.search(r"/v2/api/external/([a-f0-9-]+)", url, re.IGNORECASE)
    return match.group(1) if match else None


def format_phone_for_waba(phone: str) -> str:
    """WABA numbers always carry the Brazilian country code"""
    if phone and not phone.startswith("55"):
        return "55" + phone
    return phone


def build_template_components(params: List[str], media_url: Optional[str] = None, media_type: str = "image") -> List[dict]:
    """Meta Cloud API `components` array expected by /templateBody"""
    components = []
    if media_url:
        components.append({
            "type": "header",
            "parameters": [{"type": media_type, media_type: {"link": media_url}}],
        })
    if params:
        components.append({
            "type": "body",
            "parameters": [{"type": "text", "text": value} for value in params],
        })
    return components


class ZproProvider(WhatsAppProvider):
    """Z-PRO provider - supports legacy /params/ and WABA /SendMessageAPIText endpoints"""

    @property
    def name(self) -> str:
        return "Z-PRO"

    def _external_key(self, settings: ProviderSettings) -> str:
        key = settings.instance_id or ""
        if not key or key == EMBEDDED_INSTANCE:
            key = settings.api_key
        return key

    def _auth_headers(self, settings: ProviderSettings) -> dict:
        return {"Authorization": f"Bearer {settings.api_key}"}

    async def _send_text(self, phone: str, message: str, settings: ProviderSettings) -> SendResult:
        base_url = settings.api_url.rstrip("/")

        if is_waba_url(base_url):
            logging.info(f"{self.tag} Using WABA mode, externalKey from URL: {extract_waba_external_key(base_url)}")
            endpoint = f"{base_url}/SendMessageAPIText"
            body = {"number": phone, "body": message}
            status, text = await self._request("POST", endpoint, json=body, headers=self._auth_headers(settings))
            return self._parse_response(status, text, endpoint, body)

        logging.info(f"{self.tag} Using legacy /params/ mode")
        endpoint = f"{base_url}/params/"
        params = {
            "body": message,
            "number": phone,
            "externalKey": self._external_key(settings),
            "bearertoken": settings.api_key,
            "isClosed": "false",
        }
        status, text = await self._request("GET", endpoint, params=params)
        masked = {**params, "bearertoken": mask_secret(settings.api_key, settings.api_key)}
        return self._parse_response(status, text, endpoint, masked)

    async def _send_image(self, phone: str, message: str, image_url: str, settings: ProviderSettings) -> SendResult:
        base_url = settings.api_url.rstrip("/")

        if is_waba_url(base_url):
            media = await self._fetch_image_base64(image_url)
            if media is None:
                logging.warning(f"{self.tag} Failed to fetch image, sending text only")
                return await self._send_text(phone, message, settings)

            endpoint = f"{base_url}/SendMediaAPIBase64"
            body = {"number": phone, "body": message, "mediatype": "image", "base64": media}
            status, text = await self._request("POST", endpoint, json=body, headers=self._auth_headers(settings))
            logged_body = {**body, "base64": f"<{len(media)} chars>"}
            return self._parse_response(status, text, endpoint, logged_body)

        endpoint = f"{base_url}/url"
        body = {
            "mediaUrl": image_url,
            "body": message,
            "number": phone,
            "externalKey": self._external_key(settings),
            "isClosed": False,
        }
        status, text = await self._request("POST", endpoint, json=body, headers=self._auth_headers(settings))
        return self._parse_response(status, text, endpoint, body)

    async def _send_template(
        self,
        phone: str,
        template_name: str,
        language: str,
        params: List[str],
        settings: ProviderSettings,
    ) -> SendResult:
        endpoint = f"{settings.api_url.rstrip('/')}/templateBody"
        body = {
            "number": format_phone_for_waba(phone),
            "externalKey": self._external_key(settings),
            "templateName": template_name,
            "language": language,
            "components": build_template_components(params),
        }
        status, text = await self._request("POST", endpoint, json=body, headers=self._auth_headers(settings))
        return self._parse_response(status, text, endpoint, body)

    async def _test_connection(self, settings: ProviderSettings) -> SendResult:
        base_url = settings.api_url.rstrip("/")

        if not is_waba_url(base_url):
            return await self._send_text(PING_NUMBER, "ping", settings)

        endpoint = f"{base_url}/SendMessageAPIText"
        body = {"number": PING_NUMBER, "body": "ping"}
        status, text = await self._request("POST", endpoint, json=body, headers=self._auth_headers(settings))
        debug = self._debug(endpoint, status, text, body)

        if status in (401, 403):
            return SendResult(False, error="Credenciais inválidas (Bearer Token incorreto)", error_code="AUTH_ERROR", debug=debug)
        if self._looks_like_html(text):
            return SendResult(False, error="Endpoint não encontrado. Verifique a URL da API.", error_code="INVALID_ENDPOINT", debug=debug)

        data = self._parse_json(text)
        if not isinstance(data, dict):
            return SendResult(False, error=f"Resposta inválida: {text[:100]}", error_code="INVALID_RESPONSE", debug=debug)
        if data.get("error") == "ERR_API_REQUIRES_SESSION":
            return SendResult(
                False,
                error="Sessão do WhatsApp desconectada. Escaneie o QR Code no painel do provedor.",
                error_code="SESSION_DISCONNECTED",
                debug=debug,
            )
        # Any JSON answer means the API is reachable and the token was accepted
        return SendResult(True, message_id="connection_ok", debug=debug)

    async def _fetch_image_base64(self, image_url: str) -> Optional[str]:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    image_url, timeout=aiohttp.ClientTimeout(total=config.HTTP_TIMEOUT_SECONDS)
                ) as resp:
                    if resp.status != 200:
                        return None
                    content = await resp.read()
                    content_type = resp.headers.get("Content-Type", "image/jpeg")
        except Exception as e:
            logging.warning(f"{self.tag} Error fetching image: {e}")
            return None

        encoded = base64.b64encode(content).decode("utf-8")
        return f"data:{content_type};base64,{encoded}"

    @staticmethod
    def _looks_like_html(text: str) -> bool:
        head = text.lstrip()[:15].lower()
        return head.startswith("<!doctype") or head.startswith("<html")

    def _parse_response(self, status: int, text: str, endpoint: str, payload: dict) -> SendResult:
        """Shared parsing for WABA and legacy responses"""
        debug = self._debug(endpoint, status, text, payload)

        if self._looks_like_html(text):
            logging.error(f"{self.tag} Received HTML response - likely wrong endpoint")
            return SendResult(
                False,
                error="Endpoint incorreto. Verifique a URL da API configurada.",
                error_code="INVALID_ENDPOINT",
                debug=debug,
            )

        data = self._parse_json(text)
        if not isinstance(data, dict):
            logging.error(f"{self.tag} Failed to parse JSON response")
            return SendResult(
                False,
                error=f"Resposta inválida da API: {text[:100]}",
                error_code="INVALID_RESPONSE",
                debug=debug,
            )

        if data.get("error") == "ERR_API_REQUIRES_SESSION":
            return SendResult(
                False,
                error=(
                    "Sessão do WhatsApp desconectada. Acesse o painel do provedor "
                    "(AtenderChat/Z-PRO) e escaneie o QR Code para reconectar."
                ),
                error_code="SESSION_DISCONNECTED",
                debug=debug,
            )

        if data.get("error"):
            return SendResult(False, error=str(data["error"]), error_code="API_ERROR", debug=debug)

        if not 200 <= status < 300:
            return SendResult(
                False,
                error=str(data.get("message") or f"Erro {status}"),
                error_code="HTTP_ERROR",
                debug=debug,
            )

        message_id = self._extract_message_id(data)
        if message_id:
            return SendResult(True, message_id=message_id, debug=debug)

        if (
            data.get("status") in ("success", "PENDING")
            or data.get("success") is True
            or data.get("sent") is True
        ):
            tracking_id = f"zpro_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
            logging.info(f"{self.tag} Success without message ID, using tracking: {tracking_id}")
            return SendResult(True, message_id=tracking_id, debug=debug)

        return SendResult(
            False,
            error="Resposta sem confirmação de envio",
            error_code="UNCONFIRMED",
            debug=debug,
        )

    @staticmethod
    def _extract_message_id(data: dict) -> Optional[str]:
        for key in MESSAGE_ID_KEYS:
            value = data.get(key)
            if value and value != "sent":
                return str(value)
        key_obj = data.get("key")
        if isinstance(key_obj, dict) and key_obj.get("id"):
            return str(key_obj["id"])
        nested = data.get("data")
        if isinstance(nested, dict):
            nested_key = nested.get("key")
            if isinstance(nested_key, dict) and nested_key.get("id"):
                return str(nested_key["id"])
        return None
