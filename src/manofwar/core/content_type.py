"""Content-type resolution from file extensions."""

import mimetypes
from pathlib import PurePosixPath

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Types that some platform registries lack or map differently
_MEDIA_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
    ".m4s": "video/iso.segment",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".flac": "audio/flac",
    ".opus": "audio/opus",
    ".webp": "image/webp",
    ".gz": "application/gzip",
}

for _ext, _type in _MEDIA_TYPES.items():
    mimetypes.add_type(_type, _ext)


def guess_content_type(name: str) -> str:
    """Return the MIME type for a file name based on its extension.

    Args:
        name: File name or relative path

    Returns:
        MIME type, or application/octet-stream if the extension is unknown
        or absent
    """
    suffix = PurePosixPath(name).suffix.lower()
    if not suffix:
        return DEFAULT_CONTENT_TYPE
    content_type = mimetypes.types_map.get(suffix)
    return content_type or DEFAULT_CONTENT_TYPE
