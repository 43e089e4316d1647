from aiohttp import web
from condo_notify.cron import SCHEDULED_JOBS
from condo_notify.database.models import TriggerType
from condo_notify.handlers.common import require_service_key, parse_body, read_json, json_error, http_error
from condo_notify.schemas.validation import WhatsAppConfigIn, PauseRequest, TemplateUpdate
from condo_notify.services import audit_service, job_service
from condo_notify.services.config_service import get_active_config, save_config, deactivate_config, to_settings
from condo_notify.services.providers import get_provider
from condo_notify.services.template_service import (
    TemplateNotFound, list_templates, restore_template, undeclared_placeholders, update_template,
)

routes = web.RouteTableDef()


def _iso(value):
    return value.isoformat() if value else None


def _mask(secret: str) -> str:
    if not secret:
        return ""
    return f"{secret[:4]}***" if len(secret) > 4 else "***"


def _limit(request: web.Request) -> int:
    try:
        return max(1, min(int(request.query.get("limit", 100)), 500))
    except ValueError:
        raise http_error(web.HTTPBadRequest, "Parâmetro limit inválido")


def _config_to_dict(wa_config) -> dict:
    return {
        "id": wa_config.id,
        "provider": wa_config.provider,
        "api_url": wa_config.api_url,
        "api_key": _mask(wa_config.api_key),
        "instance_id": wa_config.instance_id,
        "app_url": wa_config.app_url,
        "is_active": wa_config.is_active,
        "created_at": _iso(wa_config.created_at),
    }


# --- WhatsApp config ---

@routes.get("/admin/whatsapp-config")
async def get_whatsapp_config(request: web.Request) -> web.Response:
    require_service_key(request)
    wa_config = await get_active_config(request["session"])
    if not wa_config:
        return json_error("WhatsApp não configurado", 404)
    return web.json_response(_config_to_dict(wa_config))


@routes.put("/admin/whatsapp-config")
async def put_whatsapp_config(request: web.Request) -> web.Response:
    require_service_key(request)
    body = await parse_body(request, WhatsAppConfigIn)
    wa_config = await save_config(
        request["session"],
        provider=body.provider.value,
        api_url=body.api_url,
        api_key=body.api_key,
        instance_id=body.instance_id,
        app_url=body.app_url,
    )
    return web.json_response(_config_to_dict(wa_config))


@routes.delete("/admin/whatsapp-config")
async def delete_whatsapp_config(request: web.Request) -> web.Response:
    require_service_key(request)
    if not await deactivate_config(request["session"]):
        return json_error("WhatsApp não configurado", 404)
    return web.json_response({"success": True})


@routes.post("/admin/whatsapp-config/test")
async def test_whatsapp_config(request: web.Request) -> web.Response:
    """Check the active provider's session/credentials without sending a message"""
    require_service_key(request)
    wa_config = await get_active_config(request["session"])
    if not wa_config:
        return json_error("WhatsApp não configurado", 404)

    provider = get_provider(wa_config.provider)
    if provider is None:
        return json_error(f"Provedor desconhecido: {wa_config.provider}", 400)

    result = await provider.test_connection(to_settings(wa_config))
    return web.json_response({
        "success": result.success,
        "provider": provider.name,
        "error": result.error,
        "errorCode": result.error_code,
    })


# --- Templates ---

def _template_to_dict(template) -> dict:
    return {
        "slug": template.slug,
        "name": template.name,
        "content": template.content,
        "variables": template.variables,
        "is_active": template.is_active,
        # Placeholders missing from `variables`
        "undeclared": undeclared_placeholders(template.content, template.variables or []),
    }


@routes.get("/admin/templates")
async def get_templates(request: web.Request) -> web.Response:
    require_service_key(request)
    return web.json_response([_template_to_dict(t) for t in await list_templates(request["session"])])


@routes.put("/admin/templates/{slug}")
async def put_template(request: web.Request) -> web.Response:
    require_service_key(request)
    slug = request.match_info["slug"]
    body = await parse_body(request, TemplateUpdate)
    try:
        template = await update_template(request["session"], slug, **body.model_dump(exclude_none=True))
    except TemplateNotFound:
        return json_error(f"Template não encontrado: {slug}", 404)
    return web.json_response(_template_to_dict(template))


@routes.post("/admin/templates/{slug}/reset")
async def reset_template(request: web.Request) -> web.Response:
    require_service_key(request)
    slug = request.match_info["slug"]
    try:
        template = await restore_template(request["session"], slug)
    except TemplateNotFound:
        return json_error(f"Template sem padrão definido: {slug}", 404)
    return web.json_response(_template_to_dict(template))


# --- Audit logs ---

@routes.get("/admin/logs/deliveries")
async def delivery_logs(request: web.Request) -> web.Response:
    require_service_key(request)
    success = request.query.get("success")
    entries = await audit_service.list_delivery_attempts(
        request["session"],
        success=None if success is None else success.lower() == "true",
        function_name=request.query.get("function"),
        limit=_limit(request),
    )
    return web.json_response([
        {
            "id": e.id,
            "created_at": _iso(e.created_at),
            "function_name": e.function_name,
            "phone": e.phone,
            "template_name": e.template_name,
            "success": e.success,
            "message_id": e.message_id,
            "response_status": e.response_status,
            "error_message": e.error_message,
        }
        for e in entries
    ])


@routes.get("/admin/logs/access")
async def access_logs(request: web.Request) -> web.Response:
    require_service_key(request)
    success = request.query.get("success")
    entries = await audit_service.list_access_attempts(
        request["session"],
        success=None if success is None else success.lower() == "true",
        token_id=request.query.get("token"),
        limit=_limit(request),
    )
    return web.json_response([
        {
            "id": e.id,
            "access_at": _iso(e.access_at),
            "token_id": e.token_id,
            "resident_id": e.resident_id,
            "user_id": e.user_id,
            "success": e.success,
            "is_new_user": e.is_new_user,
            "redirect_url": e.redirect_url,
            "error_message": e.error_message,
        }
        for e in entries
    ])


# --- Scheduled jobs ---

def _job_name(request: web.Request) -> str:
    name = request.match_info["name"]
    if name not in SCHEDULED_JOBS:
        raise http_error(web.HTTPNotFound, f"Job desconhecido: {name}")
    return name


def _execution_to_dict(log) -> dict:
    return {
        "id": log.id,
        "function_name": log.function_name,
        "trigger_type": log.trigger_type,
        "status": log.status,
        "started_at": _iso(log.started_at),
        "duration_ms": log.duration_ms,
        "result": log.result,
        "error_message": log.error_message,
    }


@routes.get("/admin/jobs")
async def list_jobs(request: web.Request) -> web.Response:
    require_service_key(request)
    controls = {c.function_name: c for c in await job_service.list_controls(request["session"])}
    jobs = []
    for name in SCHEDULED_JOBS:
        control = controls.get(name)
        jobs.append({
            "function_name": name,
            "paused": bool(control and control.paused),
            "paused_at": _iso(control.paused_at) if control else None,
            "paused_by": control.paused_by if control else None,
        })
    return web.json_response(jobs)


@routes.post("/admin/jobs/{name}/pause")
async def pause_job(request: web.Request) -> web.Response:
    require_service_key(request)
    name = _job_name(request)
    body = await parse_body(request, PauseRequest) if request.can_read_body else PauseRequest()
    control = await job_service.set_paused(request["session"], name, True, body.paused_by)
    return web.json_response({"function_name": name, "paused": control.paused, "paused_at": _iso(control.paused_at)})


@routes.post("/admin/jobs/{name}/resume")
async def resume_job(request: web.Request) -> web.Response:
    require_service_key(request)
    name = _job_name(request)
    control = await job_service.set_paused(request["session"], name, False)
    return web.json_response({"function_name": name, "paused": control.paused, "paused_at": None})


@routes.post("/admin/jobs/{name}/run")
async def run_job_now(request: web.Request) -> web.Response:
    require_service_key(request)
    name = _job_name(request)
    options = await read_json(request) if request.can_read_body else {}
    log = await SCHEDULED_JOBS[name](
        session=request["session"],
        dry_run=bool(options.get("dry_run", False)),
        trigger_type=TriggerType.manual.value,
    )
    return web.json_response(_execution_to_dict(log))


@routes.get("/admin/rate-limit")
async def rate_limit_stats(request: web.Request) -> web.Response:
    require_service_key(request)
    return web.json_response(request.app["rate_limiter"].get_stats())
