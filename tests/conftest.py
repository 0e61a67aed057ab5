"""Shared test fixtures."""

from collections.abc import Callable
from pathlib import Path

import pytest
from rockery.config import BuildConfig, Config, LiveReloadConfig, ServerConfig, SiteConfig


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    """Create an empty content directory."""
    path = tmp_path / "content"
    path.mkdir(exist_ok=True)
    return path


@pytest.fixture
def test_config(tmp_path: Path, content_dir: Path) -> Config:
    """Create a test configuration with tmp_path directories.

    Content lives in tmp_path/content and output goes to tmp_path/public.
    Live reload is disabled so that emitted pages carry no script.
    """
    config_path = tmp_path / "rockery.toml"
    config_path.write_text("")

    return Config(
        site=SiteConfig(title="Test Site"),
        build=BuildConfig(content_dir=content_dir, output_dir=tmp_path / "public"),
        server=ServerConfig(),
        live_reload=LiveReloadConfig(enabled=False),
        config_path=config_path,
    )


@pytest.fixture
def write_content(content_dir: Path) -> Callable[[str, str], Path]:
    """Return a helper writing a file below the content directory."""

    def write(relative: str, text: str) -> Path:
        path = content_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return write
