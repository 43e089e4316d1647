"""Evolution API provider - `apikey` header, message id under `key.id`"""

from .base import WhatsAppProvider, ProviderSettings, SendResult


class EvolutionProvider(WhatsAppProvider):

    @property
    def name(self) -> str:
        return "Evolution"

    def _headers(self, settings: ProviderSettings) -> dict:
        return {"apikey": settings.api_key}

    async def _send_text(self, phone: str, message: str, settings: ProviderSettings) -> SendResult:
        endpoint = f"{settings.api_url.rstrip('/')}/message/sendText/{settings.instance_id}"
        body = {"number": phone, "text": message}
        status, text = await self._request("POST", endpoint, json=body, headers=self._headers(settings))
        return self._parse_response(status, text, endpoint, body)

    async def _send_image(self, phone: str, message: str, image_url: str, settings: ProviderSettings) -> SendResult:
        endpoint = f"{settings.api_url.rstrip('/')}/message/sendMedia/{settings.instance_id}"
        body = {"number": phone, "mediatype": "image", "media": image_url, "caption": message}
        status, text = await self._request("POST", endpoint, json=body, headers=self._headers(settings))
        return self._parse_response(status, text, endpoint, body)

    async def _test_connection(self, settings: ProviderSettings) -> SendResult:
        endpoint = f"{settings.api_url.rstrip('/')}/instance/connectionState/{settings.instance_id}"
        status, text = await self._request("GET", endpoint, headers=self._headers(settings))
        debug = self._debug(endpoint, status, text, None)
        data = self._parse_json(text)
        instance = data.get("instance") if isinstance(data, dict) else None
        if isinstance(instance, dict) and instance.get("state") == "open":
            return SendResult(True, message_id="connection_ok", debug=debug)
        return SendResult(False, error=f"Instância não conectada (HTTP {status})", error_code="CONNECTION_ERROR", debug=debug)

    def _parse_response(self, status: int, text: str, endpoint: str, payload: dict) -> SendResult:
        debug = self._debug(endpoint, status, text, payload)
        data = self._parse_json(text)

        if 200 <= status < 300 and isinstance(data, dict):
            key = data.get("key")
            if isinstance(key, dict) and key.get("id"):
                return SendResult(True, message_id=str(key["id"]), debug=debug)

        message = data.get("message") if isinstance(data, dict) else None
        if isinstance(message, list):
            message = "; ".join(str(item) for item in message)
        return SendResult(
            False,
            error=str(message) if message else "Erro ao enviar mensagem",
            error_code="API_ERROR" if 200 <= status < 300 else "HTTP_ERROR",
            debug=debug,
        )
