from aiohttp import web


@web.middleware
async def db_session_middleware(request: web.Request, handler):
    """
    One AsyncSession per request in request["session"].

    Commits when the handler returns, rolls back when it raises.
    Services that must not be rolled back with the request (audit rows)
    commit on their own.
    """
    session_factory = request.app["session_factory"]
    async with session_factory() as session:
        request["session"] = session
        try:
            response = await handler(request)
            await session.commit()
            return response
        except Exception:
            await session.rollback()
            raise
