"""WPPConnect provider - bearer token, `status: success` body"""

from typing import Optional

from .base import WhatsAppProvider, ProviderSettings, SendResult


class WppconnectProvider(WhatsAppProvider):

    @property
    def name(self) -> str:
        return "WPPConnect"

    def _headers(self, settings: ProviderSettings) -> dict:
        return {"Authorization": f"Bearer {settings.api_key}"}

    async def _send_text(self, phone: str, message: str, settings: ProviderSettings) -> SendResult:
        endpoint = f"{settings.api_url.rstrip('/')}/api/{settings.instance_id}/send-message"
        body = {"phone": phone, "message": message, "isGroup": False}
        status, text = await self._request("POST", endpoint, json=body, headers=self._headers(settings))
        return self._parse_response(status, text, endpoint, body)

    async def _send_image(self, phone: str, message: str, image_url: str, settings: ProviderSettings) -> SendResult:
        endpoint = f"{settings.api_url.rstrip('/')}/api/{settings.instance_id}/send-file-url"
        body = {"phone": phone, "url": image_url, "caption": message, "isGroup": False}
        status, text = await self._request("POST", endpoint, json=body, headers=self._headers(settings))
        return self._parse_response(status, text, endpoint, body)

    async def _test_connection(self, settings: ProviderSettings) -> SendResult:
        endpoint = f"{settings.api_url.rstrip('/')}/api/{settings.instance_id}/check-connection-session"
        status, text = await self._request("GET", endpoint, headers=self._headers(settings))
        debug = self._debug(endpoint, status, text, None)
        data = self._parse_json(text)
        if isinstance(data, dict) and data.get("status") is True:
            return SendResult(True, message_id="connection_ok", debug=debug)
        return SendResult(False, error=f"Sessão não conectada (HTTP {status})", error_code="CONNECTION_ERROR", debug=debug)

    def _parse_response(self, status: int, text: str, endpoint: str, payload: dict) -> SendResult:
        debug = self._debug(endpoint, status, text, payload)
        data = self._parse_json(text)

        if 200 <= status < 300 and isinstance(data, dict) and data.get("status") == "success":
            return SendResult(True, message_id=self._extract_message_id(data), debug=debug)

        message = data.get("message") if isinstance(data, dict) else None
        return SendResult(
            False,
            error=str(message) if message else "Erro ao enviar mensagem",
            error_code="API_ERROR" if 200 <= status < 300 else "HTTP_ERROR",
            debug=debug,
        )

    @staticmethod
    def _extract_message_id(data: dict) -> Optional[str]:
        if data.get("id"):
            return str(data["id"])
        # WPPConnect server wraps the sent message(s) in `response`
        response = data.get("response")
        if isinstance(response, list) and response and isinstance(response[0], dict):
            response = response[0]
        if isinstance(response, dict) and response.get("id"):
            return str(response["id"])
        return None
