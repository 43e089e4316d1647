import asyncio
import logging
import sys

from aiohttp import web

from condo_notify.config import config
from condo_notify.handlers import access, admin, dispatch, webhooks
from condo_notify.cron import scheduler_loop


def create_app(session_factory=None, identity=None, start_scheduler: bool = False) -> web.Application:
    """
    Build the aiohttp application.

    `session_factory` and `identity` default to the real database and the
    Supabase Auth client; tests pass in-memory replacements.
    """
    from condo_notify.middlewares.error import error_middleware
    from condo_notify.middlewares.rate_limit import RateLimitMiddleware
    from condo_notify.middlewares.db import db_session_middleware

    if session_factory is None:
        from condo_notify.database.core import AsyncSessionLocal
        session_factory = AsyncSessionLocal
    if identity is None:
        from condo_notify.services.identity_service import SupabaseAuthClient
        identity = SupabaseAuthClient()

    rate_limiter = RateLimitMiddleware(rate=config.RATE_LIMIT_REQUESTS, per=config.RATE_LIMIT_WINDOW)

    # Order matters: Error -> RateLimit -> DB
    app = web.Application(middlewares=[
        error_middleware,
        rate_limiter.middleware,
        db_session_middleware,
    ])
    app["session_factory"] = session_factory
    app["identity"] = identity
    app["rate_limiter"] = rate_limiter

    app.add_routes(dispatch.routes)
    app.add_routes(access.routes)
    app.add_routes(webhooks.routes)
    app.add_routes(admin.routes)

    if start_scheduler:
        app.on_startup.append(_start_scheduler)
        app.on_cleanup.append(_stop_scheduler)

    return app


async def _start_scheduler(app: web.Application):
    app["scheduler"] = asyncio.create_task(scheduler_loop())


async def _stop_scheduler(app: web.Application):
    task = app.get("scheduler")
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


def main():
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        stream=sys.stdout,
    )

    app = create_app(start_scheduler=True)
    logging.info(f"Starting notification service on {config.HOST}:{config.PORT}...")
    web.run_app(app, host=config.HOST, port=config.PORT, print=None)


if __name__ == "__main__":
    try:
        main()
    except (KeyboardInterrupt, SystemExit):
        logging.info("Service stopped!")
