"""Media file endpoint.

Serves files beneath the media root directory under the configured URL prefix.
"""

import asyncio
import errno
import logging
import os
import stat
from datetime import UTC, datetime
from pathlib import Path
from typing import BinaryIO

from aiohttp import hdrs, web

from manofwar.config import MediaConfig
from manofwar.core.content import serve_content
from manofwar.core.content_type import guess_content_type
from manofwar.core.paths import resolve_media_path, strip_prefix

logger = logging.getLogger(__name__)


class MediaHandler:
    """Resolves request paths against the media root and streams the files.

    Holds only the immutable configuration, so a single instance serves any
    number of concurrent requests.
    """

    def __init__(self, config: MediaConfig) -> None:
        self._root_dir = config.root_dir.resolve()
        self._prefix = config.prefix

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    @property
    def prefix(self) -> str:
        return self._prefix

    async def handle(self, request: web.Request) -> web.StreamResponse:
        filename = strip_prefix(request.path, self._prefix)

        try:
            file_path = resolve_media_path(self._root_dir, filename)
        except ValueError as e:
            logger.warning(f"Rejected media path {filename!r}: {e}")
            raise web.HTTPNotFound() from None

        logger.info(f"Request for file: {file_path}")

        loop = asyncio.get_running_loop()
        opening = loop.run_in_executor(None, _open_media_file, file_path)
        try:
            fobj, st = await asyncio.shield(opening)
        except asyncio.CancelledError:
            # The open may still complete in its worker thread
            opening.add_done_callback(_close_abandoned)
            raise
        except OSError as e:
            logger.debug(f"Cannot open {file_path}: {e}")
            raise web.HTTPNotFound() from None

        try:
            return await serve_content(
                request,
                filename,
                datetime.fromtimestamp(st.st_mtime, tz=UTC),
                fobj,
                headers={hdrs.CONTENT_TYPE: guess_content_type(filename)},
            )
        finally:
            # A cancelled read may still hold the buffer lock
            await asyncio.shield(loop.run_in_executor(None, fobj.close))


def _close_abandoned(opening: asyncio.Future) -> None:
    """Close a file whose opener was cancelled before receiving it."""
    if opening.cancelled() or opening.exception() is not None:
        return
    fobj, _ = opening.result()
    fobj.close()
    logger.debug("Closed a file opened for a cancelled request")


def _open_media_file(path: Path) -> tuple[BinaryIO, os.stat_result]:
    """Open a regular file for reading.

    Non-regular files are refused before opening so a FIFO cannot block.

    Raises:
        OSError: If the file is missing, unreadable or not a regular file
    """
    if not stat.S_ISREG(path.stat().st_mode):
        raise OSError(errno.ENOENT, "Not a regular file", str(path))

    fobj = path.open("rb")
    try:
        st = os.fstat(fobj.fileno())
    except OSError:
        fobj.close()
        raise
    return fobj, st


def create_media_routes(handler: MediaHandler) -> list[web.RouteDef]:
    return [web.get(f"{handler.prefix}{{path:.*}}", handler.handle)]
