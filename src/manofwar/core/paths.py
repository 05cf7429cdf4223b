"""Mapping of request paths onto the media directory."""

from pathlib import Path


class PathOutsideRootError(ValueError):
    """Raised when a request path resolves outside the media root."""


def strip_prefix(path: str, prefix: str) -> str:
    """Remove the URL prefix from a request path.

    Args:
        path: Request path (e.g., "/media/videos/intro.mp4")
        prefix: URL prefix (e.g., "/media/")

    Returns:
        The remainder after the prefix, or the path unchanged if it does not
        start with the prefix.
    """
    return path.removeprefix(prefix)


def resolve_media_path(root: Path, relative: str) -> Path:
    """Resolve a relative request path beneath the media root.

    Both the root and the joined path are canonicalized, so ``..`` segments
    and symlinks are followed before the containment check.

    Args:
        root: Media root directory
        relative: Path relative to the root, as taken from the URL

    Returns:
        Canonical path of the target, which may not exist.

    Raises:
        PathOutsideRootError: If the target is not the root or beneath it
        ValueError: If the path contains a null byte
    """
    if "\x00" in relative:
        raise ValueError("Path contains a null byte")

    canonical_root = root.resolve()
    # Leading slashes would make the join discard the root
    target = (canonical_root / relative.lstrip("/")).resolve()

    if not target.is_relative_to(canonical_root):
        raise PathOutsideRootError(f"{relative!r} resolves outside {canonical_root}")
    return target
