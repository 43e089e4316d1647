"""
Message Dispatch Service

One call = one send attempt = one row in whatsapp_notification_logs.
Failures are returned to the caller inside the log entry and never raised,
so the business action that triggered the notification is not affected.
"""
import logging
from typing import Optional, Dict, Callable, Awaitable, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from condo_notify.database.models import WhatsAppConfig, WhatsAppNotificationLog
from condo_notify.services import audit_service
from condo_notify.services.config_service import get_active_config, to_settings
from condo_notify.services.providers import SendResult, clean_phone, get_provider
from condo_notify.services.template_service import (
    DEFAULT_TEMPLATES,
    get_template,
    render,
    resolve_template_content,
)

NOT_CONFIGURED = "not configured"

ConfigLoader = Callable[[AsyncSession], Awaitable[Optional[WhatsAppConfig]]]
TemplateLoader = Callable[..., Awaitable[Optional[str]]]


class MessageDispatcher:
    """
    Render a template and send it through the active provider.

    The config and template lookups are injected so callers (and tests)
    can replace the "latest active row" repositories.
    """

    def __init__(
        self,
        session: AsyncSession,
        config_loader: ConfigLoader = get_active_config,
        template_loader: TemplateLoader = resolve_template_content,
        provider_lookup=get_provider,
    ):
        self.session = session
        self.config_loader = config_loader
        self.template_loader = template_loader
        self.provider_lookup = provider_lookup

    async def dispatch(
        self,
        template_slug: str,
        phone: str,
        variables: Optional[Dict[str, str]] = None,
        function_name: str = "dispatch",
        image_url: Optional[str] = None,
        waba_template: Optional[str] = None,
        template_language: str = "pt_BR",
        condominium_id: Optional[int] = None,
        resident_id: Optional[int] = None,
    ) -> WhatsAppNotificationLog:
        variables = variables or {}
        phone_clean = clean_phone(phone)

        async def _log(result: SendResult, payload: Optional[dict] = None) -> WhatsAppNotificationLog:
            debug = result.debug or {}
            response_text = debug.get("response")
            return await audit_service.log_delivery_attempt(
                self.session,
                function_name=function_name,
                phone=phone_clean,
                success=result.success,
                template_name=template_slug,
                template_language=template_language,
                request_payload=payload if payload is not None else debug.get("payload"),
                response_status=debug.get("status"),
                response_body=response_text,
                message_id=result.message_id,
                error_message=result.error,
                debug_info={
                    "endpoint": debug.get("endpoint"),
                    "status": debug.get("status"),
                    "snippet": response_text[:300] if response_text else None,
                    "error_code": result.error_code,
                },
                resident_id=resident_id,
            )

        try:
            result, payload = await self._render_and_send(
                template_slug, phone_clean, variables, image_url, waba_template, template_language, condominium_id,
            )
        except Exception as e:
            # Adapters convert transport errors themselves; anything else still gets an audit row
            logging.exception(f"Unexpected error dispatching '{template_slug}': {e}")
            # a failed repository query leaves the transaction unusable for the audit insert
            await self.session.rollback()
            result = SendResult(False, error=f"Erro inesperado: {e}", error_code="UNEXPECTED_ERROR")
            payload = {"variables": variables}

        if result.success:
            logging.info(f"Dispatch '{template_slug}' to {phone_clean} sent, messageId={result.message_id}")
        else:
            logging.warning(f"Dispatch '{template_slug}' to {phone_clean} failed: {result.error}")

        return await _log(result, payload)

    async def _render_and_send(self, template_slug, phone, variables, image_url, waba_template,
                               template_language, condominium_id) -> Tuple[SendResult, Optional[dict]]:
        """Returns the send result and, when nothing reached a provider, the payload to audit"""
        wa_config = await self.config_loader(self.session)
        if not wa_config:
            logging.warning(f"Dispatch '{template_slug}' skipped: WhatsApp not configured")
            return SendResult(False, error=NOT_CONFIGURED, error_code="NOT_CONFIGURED"), {"variables": variables}

        content = await self.template_loader(self.session, template_slug, condominium_id)
        if content is None:
            logging.error(f"Dispatch failed: template '{template_slug}' not found")
            error = f"Template não encontrado: {template_slug}"
            return SendResult(False, error=error, error_code="TEMPLATE_NOT_FOUND"), {"variables": variables}

        message = render(content, variables)
        result = await self._send(wa_config.provider, phone, message, image_url, waba_template,
                                  template_language, template_slug, variables, to_settings(wa_config))
        return result, None

    async def _send(self, provider_name, phone, message, image_url, waba_template, language,
                    slug, variables, settings) -> SendResult:
        provider = self.provider_lookup(provider_name)
        if provider is None:
            logging.error(f"Unknown WhatsApp provider: {provider_name}")
            return SendResult(False, error=f"Provedor desconhecido: {provider_name}", error_code="UNKNOWN_PROVIDER")

        if waba_template:
            params = await self._ordered_params(slug, variables)
            return await provider.send_template(phone, waba_template, language, params, settings)
        if image_url:
            return await provider.send_image(phone, message, image_url, settings)
        return await provider.send_text(phone, message, settings)

    async def _ordered_params(self, slug: str, variables: Dict[str, str]) -> List[str]:
        """WABA templates take positional params in the declared variable order"""
        template = await get_template(self.session, slug)
        if template and template.variables:
            declared = template.variables
        else:
            declared = DEFAULT_TEMPLATES.get(slug, {}).get("variables") or list(variables)
        return [str(variables.get(name, "")) for name in declared]


async def dispatch_message(session: AsyncSession, template_slug: str, phone: str,
                           variables: Optional[Dict[str, str]] = None, **options) -> WhatsAppNotificationLog:
    """Shortcut with the default repositories"""
    return await MessageDispatcher(session).dispatch(template_slug, phone, variables, **options)
