"""aiohttp server for manofwar.

Application factory, middleware and route registration.
"""

import asyncio
import logging

from aiohttp import web
from aiohttp.typedefs import Handler

from manofwar.api.media import MediaHandler, create_media_routes
from manofwar.app_keys import config_key
from manofwar.config import Config
from manofwar.core.content import STARTED_RESPONSE

logger = logging.getLogger(__name__)


@web.middleware
async def timeout_middleware(
    request: web.Request,
    handler: Handler,
) -> web.StreamResponse:
    """Bound the time spent handling a request.

    A request that times out before its headers are sent gets 504. One that
    times out while streaming has its connection closed, since the status has
    already gone out.
    """
    timeout = request.app[config_key].media.request_timeout
    if timeout is None:
        return await handler(request)

    try:
        async with asyncio.timeout(timeout):
            return await handler(request)
    except TimeoutError:
        logger.warning(f"Request for {request.path} timed out after {timeout}s")
        started: web.StreamResponse | None = request.get(STARTED_RESPONSE)
        if started is None:
            raise web.HTTPGatewayTimeout() from None
        if request.transport is not None:
            request.transport.close()
        return started


def create_app(config: Config) -> web.Application:
    """Create aiohttp application.

    Args:
        config: Application configuration

    Returns:
        Configured aiohttp application
    """
    app = web.Application(middlewares=[timeout_middleware])

    media_handler = MediaHandler(config.media)

    app[config_key] = config

    # GET and HEAD only; aiohttp answers other methods with 405
    app.router.add_routes(create_media_routes(media_handler))

    return app


def run_server(config: Config) -> None:
    """Run the server until interrupted.

    Args:
        config: Application configuration

    Raises:
        OSError: If the listener cannot bind the configured address
    """
    if not config.media.root_dir.is_dir():
        logger.warning(
            f"Media directory {config.media.root_dir} does not exist, "
            "every request will be answered with 404",
        )

    app = create_app(config)
    web.run_app(app, host=config.server.host, port=config.server.port)
