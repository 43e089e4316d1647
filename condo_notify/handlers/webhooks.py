import logging
from aiohttp import web
from condo_notify.handlers.common import read_json
from condo_notify.services.status_webhook_service import apply_status_update

routes = web.RouteTableDef()


@routes.post("/webhooks/whatsapp")
async def whatsapp_status(request: web.Request) -> web.Response:
    payload = await read_json(request)
    update = await apply_status_update(request["session"], payload)

    if not update.message_id:
        return web.json_response({"success": True, "message": "No message ID to process"})
    return web.json_response({
        "success": True,
        "message": "Status updated",
        "messageId": update.message_id,
        "status": update.status,
        "updated": update.updated,
    })


@routes.post("/webhooks/payments")
async def payment_event(request: web.Request) -> web.Response:
    """Payment processor events are only acknowledged here"""
    payload = await read_json(request)
    event_type = payload.get("type") or payload.get("action") or "unknown"
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    logging.info(f"Payment webhook received: type={event_type}, id={data.get('id')}")
    return web.json_response({"received": True})
