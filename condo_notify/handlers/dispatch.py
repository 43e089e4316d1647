from aiohttp import web
from condo_notify.handlers.common import require_service_key, parse_body
from condo_notify.schemas.validation import DispatchRequest
from condo_notify.services.dispatch_service import MessageDispatcher

routes = web.RouteTableDef()


@routes.post("/dispatch")
async def dispatch(request: web.Request) -> web.Response:
    """
    Send one templated WhatsApp message.

    Always answers 200 once the request is valid: a failed send is a
    result, recorded in the delivery log, not an HTTP error.
    """
    require_service_key(request)
    body = await parse_body(request, DispatchRequest)

    dispatcher = MessageDispatcher(request["session"])
    attempt = await dispatcher.dispatch(
        body.templateSlug,
        body.phone,
        body.variables,
        function_name=body.functionName,
        image_url=body.imageUrl,
        waba_template=body.wabaTemplate,
        template_language=body.templateLanguage,
        condominium_id=body.condominiumId,
        resident_id=body.residentId,
    )

    payload = {"success": attempt.success}
    if attempt.message_id:
        payload["messageId"] = attempt.message_id
    if attempt.error_message:
        payload["error"] = attempt.error_message
    return web.json_response(payload)
