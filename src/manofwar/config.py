"""Configuration management for manofwar.

Settings come from command-line flags, each of which can be overridden by an
environment variable. The resulting configuration is immutable for the
lifetime of the process.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

PORT_ENV = "SERVER_PORT"
HOST_ENV = "SERVER_HOST"
MEDIA_DIR_ENV = "MEDIA_DIR"
PREFIX_ENV = "MEDIA_PREFIX"
TIMEOUT_ENV = "REQUEST_TIMEOUT"

DEFAULT_PREFIX = "/media/"


@dataclass(frozen=True)
class ServerConfig:
    """Listener configuration."""

    host: str = "0.0.0.0"
    port: int = 8080


@dataclass(frozen=True)
class MediaConfig:
    """Media serving configuration."""

    root_dir: Path = field(default_factory=lambda: Path("media").absolute())
    prefix: str = DEFAULT_PREFIX
    request_timeout: float | None = None


@dataclass(frozen=True)
class CliSettings:
    """Values supplied on the command line.

    None means the flag was not given and the default applies.
    """

    host: str | None = None
    port: int | None = None
    media_dir: Path | None = None
    prefix: str | None = None
    request_timeout: float | None = None


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    server: ServerConfig
    media: MediaConfig

    @classmethod
    def load(
        cls,
        settings: CliSettings | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "Config":
        """Build configuration from CLI settings and environment.

        A non-empty environment variable takes precedence over the matching
        command-line flag, which takes precedence over the default.

        Args:
            settings: Values from command-line flags
            environ: Environment mapping (default: os.environ)

        Returns:
            Config instance with an absolute media root

        Raises:
            ValueError: If a value is invalid, or the media path is a file or
                cannot be made absolute
        """
        settings = settings or CliSettings()
        env = os.environ if environ is None else environ

        host = _env(env, HOST_ENV) or settings.host or ServerConfig.host

        port_raw = _env(env, PORT_ENV)
        port = _parse_port(port_raw) if port_raw else settings.port
        if port is None:
            port = ServerConfig.port
        elif not 0 < port < 65536:
            raise ValueError(f"Port must be between 1 and 65535, got {port}")

        media_dir_raw = _env(env, MEDIA_DIR_ENV)
        media_dir = Path(media_dir_raw) if media_dir_raw else settings.media_dir
        root_dir = _absolute(media_dir or Path("media"))
        if root_dir.exists() and not root_dir.is_dir():
            raise ValueError(f"Media directory {root_dir} is not a directory")

        prefix = _normalize_prefix(
            _env(env, PREFIX_ENV) or settings.prefix or DEFAULT_PREFIX,
        )

        timeout_raw = _env(env, TIMEOUT_ENV)
        timeout = _parse_timeout(timeout_raw) if timeout_raw else settings.request_timeout
        if timeout is not None and timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {timeout}")

        return cls(
            server=ServerConfig(host=host, port=port),
            media=MediaConfig(root_dir=root_dir, prefix=prefix, request_timeout=timeout),
        )


def _env(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name, "").strip()
    return value or None


def _parse_port(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{PORT_ENV} must be an integer, got {raw!r}") from None


def _parse_timeout(raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{TIMEOUT_ENV} must be a number, got {raw!r}") from None


def _absolute(path: Path) -> Path:
    """Make the media directory absolute without following symlinks.

    Raises:
        ValueError: If the current working directory cannot be determined
    """
    try:
        return path.expanduser().absolute()
    except OSError as e:
        raise ValueError(f"Cannot get absolute path for media directory {path}: {e}") from e


def _normalize_prefix(prefix: str) -> str:
    """Ensure the URL prefix starts and ends with a slash."""
    if not prefix.startswith("/"):
        prefix = f"/{prefix}"
    if not prefix.endswith("/"):
        prefix = f"{prefix}/"
    return prefix
