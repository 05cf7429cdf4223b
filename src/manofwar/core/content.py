"""Conditional and range-aware delivery of file content.

Performs the validator, conditional-request and byte-range handling that
aiohttp's FileResponse does for a path, but over a stream the caller has
already opened, so the caller decides how the file is opened and when it is
closed.
"""

import asyncio
import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import formatdate
from typing import BinaryIO

from aiohttp import hdrs, web
from aiohttp.helpers import ETag

from manofwar.core.content_type import guess_content_type

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

# Request storage key for a response whose headers have been sent
STARTED_RESPONSE = "manofwar.started_response"

_ETAG_ANY = "*"
_EPOCH = datetime.fromtimestamp(0, tz=UTC)


class RangeNotSatisfiableError(ValueError):
    """Raised when a Range header cannot be satisfied against the content size."""


@dataclass(frozen=True)
class ByteRange:
    """A satisfiable byte range within content of a known size."""

    start: int
    length: int

    @property
    def end(self) -> int:
        """Inclusive end offset."""
        return self.start + self.length - 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


def resolve_range(request: web.BaseRequest, size: int) -> ByteRange | None:
    """Resolve the request's Range header against the content size.

    Only single ranges in the ``bytes`` unit are supported. Ranges in other
    units and multiple ranges are ignored, so the full content is sent.

    Args:
        request: Incoming request
        size: Content size in bytes

    Returns:
        The satisfiable range, or None if the request has no single bytes range

    Raises:
        RangeNotSatisfiableError: If the range is malformed or starts at or
            beyond the end of the content
    """
    header = request.headers.get(hdrs.RANGE)
    if header is None or not header.strip().startswith("bytes="):
        return None
    if "," in header:
        logger.debug(f"Ignoring multiple ranges: {header}")
        return None

    try:
        rng = request.http_range
    except ValueError as e:
        raise RangeNotSatisfiableError(str(e)) from e

    start = rng.start if rng.start is not None else 0
    if start < 0:
        # Suffix range: the last -start bytes
        start = max(size + start, 0)
    if start >= size:
        raise RangeNotSatisfiableError(f"Range start {start} is not below size {size}")

    stop = size if rng.stop is None else min(rng.stop, size)
    return ByteRange(start=start, length=stop - start)


def compute_etag(modified: datetime, size: int) -> str:
    """Compute a strong ETag value (without quotes) from mtime and size."""
    mtime_us = int(modified.timestamp() * 1_000_000)
    return f"{mtime_us:x}-{size:x}"


def _strong_match(etags: Sequence[ETag], value: str) -> bool:
    return any(
        etag.value == _ETAG_ANY or (not etag.is_weak and etag.value == value)
        for etag in etags
    )


def _weak_match(etags: Sequence[ETag], value: str) -> bool:
    return any(etag.value in (_ETAG_ANY, value) for etag in etags)


def _truncate(modified: datetime) -> datetime:
    # HTTP dates have second precision
    return modified.replace(microsecond=0)


def _check_preconditions(
    request: web.BaseRequest,
    modified: datetime,
    etag: str,
    validators: Mapping[str, str],
) -> None:
    """Evaluate conditional request headers.

    Raises:
        web.HTTPPreconditionFailed: If If-Match or If-Unmodified-Since fails
        web.HTTPNotModified: If the client's cached copy is current
    """
    has_mtime = modified > _EPOCH

    if_match = request.if_match
    if if_match is not None:
        if not _strong_match(if_match, etag):
            raise web.HTTPPreconditionFailed()
    elif has_mtime:
        unmodified_since = request.if_unmodified_since
        if unmodified_since is not None and _truncate(modified) > unmodified_since:
            raise web.HTTPPreconditionFailed()

    safe = request.method in (hdrs.METH_GET, hdrs.METH_HEAD)

    if_none_match = request.if_none_match
    if if_none_match is not None:
        if _weak_match(if_none_match, etag):
            if safe:
                raise web.HTTPNotModified(headers=validators)
            raise web.HTTPPreconditionFailed()
    elif safe and has_mtime:
        modified_since = request.if_modified_since
        if modified_since is not None and _truncate(modified) <= modified_since:
            raise web.HTTPNotModified(headers=validators)


def _range_applies(request: web.BaseRequest, modified: datetime, etag: str) -> bool:
    """Decide whether a Range header is honored given If-Range."""
    if_range = request.headers.get(hdrs.IF_RANGE)
    if if_range is None:
        return True
    if if_range.startswith(('"', "W/")):
        return if_range == f'"{etag}"'
    since = request.if_range
    return since is not None and modified > _EPOCH and _truncate(modified) == since


def _content_size(fobj: BinaryIO) -> int:
    size = fobj.seek(0, os.SEEK_END)
    fobj.seek(0)
    return size


async def _copy_range(
    response: web.StreamResponse,
    fobj: BinaryIO,
    start: int,
    length: int,
) -> None:
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, fobj.seek, start)
    remaining = length
    while remaining > 0:
        chunk = await loop.run_in_executor(None, fobj.read, min(CHUNK_SIZE, remaining))
        if not chunk:
            break
        await response.write(chunk)
        remaining -= len(chunk)


async def serve_content(
    request: web.BaseRequest,
    name: str,
    modified: datetime,
    fobj: BinaryIO,
    *,
    headers: Mapping[str, str] | None = None,
) -> web.StreamResponse:
    """Send the content of an open binary stream in response to a request.

    Emits Last-Modified and ETag validators, answers conditional requests with
    304 or 412, and serves a single byte range with 206 or rejects it with 416.
    A HEAD request receives the headers only. The stream is not closed.

    Args:
        request: Incoming request
        name: File name, used for the content type when headers lack one
        modified: Last modification time of the content
        fobj: Readable, seekable binary stream
        headers: Extra response headers (e.g., Content-Type)

    Returns:
        The prepared and completed response

    Raises:
        web.HTTPNotModified: If the client's cached copy is current
        web.HTTPPreconditionFailed: If a precondition header fails
        web.HTTPRequestRangeNotSatisfiable: If the Range cannot be satisfied
    """
    loop = asyncio.get_running_loop()
    size = await loop.run_in_executor(None, _content_size, fobj)

    etag = compute_etag(modified, size)
    validators = {hdrs.ETAG: f'"{etag}"'}
    if modified > _EPOCH:
        validators[hdrs.LAST_MODIFIED] = formatdate(modified.timestamp(), usegmt=True)

    _check_preconditions(request, modified, etag, validators)

    byte_range = None
    if _range_applies(request, modified, etag):
        try:
            byte_range = resolve_range(request, size)
        except RangeNotSatisfiableError as e:
            logger.debug(f"Unsatisfiable range for {name}: {e}")
            raise web.HTTPRequestRangeNotSatisfiable(
                headers={hdrs.CONTENT_RANGE: f"bytes */{size}"},
            ) from None

    response = web.StreamResponse(headers=headers)
    response.headers.update(validators)
    response.headers[hdrs.ACCEPT_RANGES] = "bytes"
    if hdrs.CONTENT_TYPE not in response.headers:
        response.headers[hdrs.CONTENT_TYPE] = guess_content_type(name)

    start, length = 0, size
    if byte_range is not None:
        response.set_status(web.HTTPPartialContent.status_code)
        response.headers[hdrs.CONTENT_RANGE] = byte_range.content_range(size)
        start, length = byte_range.start, byte_range.length
    response.content_length = length

    try:
        await response.prepare(request)
        request[STARTED_RESPONSE] = response
        if request.method != hdrs.METH_HEAD:
            await _copy_range(response, fobj, start, length)
        await response.write_eof()
    except ConnectionResetError:
        logger.debug(f"Client disconnected while streaming {name}")

    return response
