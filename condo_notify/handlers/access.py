import logging
from aiohttp import web
from pydantic import ValidationError
from condo_notify.handlers.common import read_json, json_error
from condo_notify.middlewares.rate_limit import client_ip
from condo_notify.schemas.validation import VerifyTokenRequest
from condo_notify.services.access_service import AccessTokenVerifier

routes = web.RouteTableDef()


@routes.post("/verify-token")
async def verify_token(request: web.Request) -> web.Response:
    data = await read_json(request)
    if not data.get("token"):
        return json_error("Token não fornecido", 400)
    try:
        body = VerifyTokenRequest.model_validate(data)
    except ValidationError:
        logging.info(f"Malformed access token from {client_ip(request)}")
        return json_error("Token inválido", 400)

    verifier = AccessTokenVerifier(request["session"], request.app["identity"])
    result = await verifier.verify(
        str(body.token),
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return web.json_response(result.to_response(), status=result.http_status)
