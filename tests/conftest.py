"""Shared test fixtures."""

from pathlib import Path

import pytest
from manofwar.config import Config, MediaConfig, ServerConfig


@pytest.fixture
def media_dir(tmp_path: Path) -> Path:
    """Create an empty media root directory."""
    media = tmp_path / "media"
    media.mkdir()
    return media


@pytest.fixture
def hello_file(media_dir: Path) -> Path:
    """Create the 11-byte test.txt file containing "Hello World"."""
    path = media_dir / "test.txt"
    path.write_bytes(b"Hello World")
    return path


@pytest.fixture
def test_config(media_dir: Path) -> Config:
    """Create a test configuration serving media_dir under /media/."""
    return Config(
        server=ServerConfig(),
        media=MediaConfig(root_dir=media_dir),
    )
