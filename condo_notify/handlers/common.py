import hmac
import json
import logging
from typing import Type, TypeVar
from aiohttp import web
from pydantic import BaseModel, ValidationError
from condo_notify.config import config

M = TypeVar("M", bound=BaseModel)


def json_error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def http_error(exc_class, message: str) -> web.HTTPException:
    """HTTPException carrying the same {"error": ...} body as json_error"""
    return exc_class(text=json.dumps({"error": message}), content_type="application/json")


def require_service_key(request: web.Request):
    """Internal callers and admins authenticate with the shared service key"""
    supplied = request.headers.get("X-Admin-Key")
    if not supplied:
        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            supplied = auth[len("Bearer "):]

    if not config.ADMIN_API_KEY:
        logging.warning(f"ADMIN_API_KEY not set, rejecting {request.method} {request.path}")
        raise http_error(web.HTTPUnauthorized, "Não autorizado")

    if not supplied or not hmac.compare_digest(supplied, config.ADMIN_API_KEY):
        logging.warning(f"Invalid service key for {request.method} {request.path} from {request.remote}")
        raise http_error(web.HTTPUnauthorized, "Não autorizado")


async def read_json(request: web.Request) -> dict:
    try:
        data = await request.json()
    except ValueError:
        raise http_error(web.HTTPBadRequest, "JSON inválido")
    if not isinstance(data, dict):
        raise http_error(web.HTTPBadRequest, "JSON inválido")
    return data


async def parse_body(request: web.Request, model: Type[M]) -> M:
    data = await read_json(request)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        logging.info(f"Invalid payload for {request.path}: {fields}")
        raise http_error(web.HTTPBadRequest, f"Dados inválidos: {fields}")
