"""Z-API provider - instance token travels in the URL path"""

from typing import Optional

from .base import WhatsAppProvider, ProviderSettings, SendResult, mask_secret


class ZapiProvider(WhatsAppProvider):

    @property
    def name(self) -> str:
        return "Z-API"

    def _endpoint(self, settings: ProviderSettings, action: str) -> str:
        base_url = settings.api_url.rstrip("/")
        return f"{base_url}/instances/{settings.instance_id}/token/{settings.api_key}/{action}"

    async def _send_text(self, phone: str, message: str, settings: ProviderSettings) -> SendResult:
        endpoint = self._endpoint(settings, "send-text")
        body = {"phone": phone, "message": message}
        status, text = await self._request("POST", endpoint, json=body)
        return self._parse_response(status, text, mask_secret(endpoint, settings.api_key), body)

    async def _send_image(self, phone: str, message: str, image_url: str, settings: ProviderSettings) -> SendResult:
        endpoint = self._endpoint(settings, "send-image")
        body = {"phone": phone, "image": image_url, "caption": message}
        status, text = await self._request("POST", endpoint, json=body)
        return self._parse_response(status, text, mask_secret(endpoint, settings.api_key), body)

    async def _test_connection(self, settings: ProviderSettings) -> SendResult:
        endpoint = self._endpoint(settings, "status")
        status, text = await self._request("GET", endpoint)
        debug = self._debug(mask_secret(endpoint, settings.api_key), status, text, None)
        data = self._parse_json(text)
        if 200 <= status < 300 and isinstance(data, dict) and data.get("connected") is True:
            return SendResult(True, message_id="connection_ok", debug=debug)
        error = self._error_message(data) or f"Erro {status}"
        return SendResult(False, error=error, error_code="CONNECTION_ERROR", debug=debug)

    def _parse_response(self, status: int, text: str, endpoint: str, payload: dict) -> SendResult:
        debug = self._debug(endpoint, status, text, payload)
        data = self._parse_json(text)

        if 200 <= status < 300 and isinstance(data, dict):
            message_id = data.get("zapiMessageId") or data.get("messageId")
            if message_id:
                return SendResult(True, message_id=str(message_id), debug=debug)

        return SendResult(
            False,
            error=self._error_message(data) or "Erro ao enviar mensagem",
            error_code="API_ERROR" if 200 <= status < 300 else "HTTP_ERROR",
            debug=debug,
        )

    @staticmethod
    def _error_message(data) -> Optional[str]:
        if isinstance(data, dict):
            value = data.get("message") or data.get("error")
            return str(value) if value else None
        return None
