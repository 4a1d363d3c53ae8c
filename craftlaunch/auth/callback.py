"""One-shot local HTTP listener receiving an OAuth2 authorization code."""
import asyncio
import logging
from typing import Optional
from urllib.parse import urlsplit

from aiohttp import web

from ..errors import AuthenticationError

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0
_SUCCESS_PAGE = "Authentication complete. You can close this tab and return to the launcher."


async def wait_for_oauth_code(redirect_uri: str, *, timeout: Optional[float] = DEFAULT_TIMEOUT,
                              expected_state: Optional[str] = None,
                              ready: Optional[asyncio.Event] = None) -> str:
    """
    Listens on the host and port of ``redirect_uri`` until the provider
    redirects the browser back with ``?code=...`` (or ``?error=...``).

    The listener serves a single attempt: it is torn down as soon as the
    future resolves, fails, or ``timeout`` expires. ``ready`` is set once the
    socket accepts connections.
    """
    parts = urlsplit(redirect_uri)
    host = parts.hostname or 'localhost'
    port = parts.port or 80
    path = parts.path or '/'

    loop = asyncio.get_running_loop()
    code_future: asyncio.Future = loop.create_future()

    async def handle_callback(request: web.Request) -> web.Response:
        query = request.query
        if code_future.done():
            return web.Response(status=410, text="This authentication attempt is already finished.")
        if 'error' in query:
            description = query.get('error_description') or query['error']
            code_future.set_exception(AuthenticationError(query['error'], description))
            return web.Response(status=400, text=f"Error: {description} ({query['error']}).")
        if expected_state is not None and query.get('state') != expected_state:
            code_future.set_exception(AuthenticationError('invalid_state', "OAuth state mismatch"))
            return web.Response(status=400, text="Invalid state.")
        code = query.get('code')
        if not code:
            return web.Response(status=400, text="Missing parameters.")
        code_future.set_result(code)
        return web.Response(text=_SUCCESS_PAGE)

    app = web.Application()
    app.router.add_get(path, handle_callback)
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    try:
        site = web.TCPSite(runner, host, port)
        await site.start()
        log.info(f"Waiting for OAuth callback on {redirect_uri}")
        if ready is not None:
            ready.set()
        try:
            return await asyncio.wait_for(code_future, timeout)
        except asyncio.TimeoutError as e:
            raise AuthenticationError('timeout', f"No OAuth callback received on {redirect_uri}", e) from e
    finally:
        await runner.cleanup()
