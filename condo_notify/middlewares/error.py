import logging
from aiohttp import web


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        # Deliberate HTTP responses (404 routes, 401, 429...) pass through
        raise
    except Exception as e:
        logging.exception(f"Unhandled exception in {request.method} {request.path}: {e}")
        # Internal details stay in the logs
        return web.json_response({"error": "Erro interno do servidor"}, status=500)
