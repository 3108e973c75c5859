"""
Test Configuration
==================

Pytest configuration with fixtures for all test types.
Provides test settings, fake renderers, and sample documents.
"""

import pytest
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, List

from pydantic_settings import SettingsConfigDict

# Import application modules
import html_to_image.config.settings as settings_module
from html_to_image.config.settings import Settings
from html_to_image.core.resolution.config_resolver import ConfigResolver
from html_to_image.models.schemas import EffectiveConfig, InvocationOptions

from tests.utils.helpers import make_document
from tests.utils.mocks import FakeRenderer


# Test settings override
class TestSettings(Settings):
    """Test-specific settings."""

    environment: str = "testing"
    debug: bool = True
    config_file: Path = Path("tests/data/does-not-exist.json")
    playwright_headless: bool = True
    ready_timeout_ms: int = 200
    image_timeout_ms: int = 100
    gemini_api_key: str = "test-gemini-key"
    log_level: str = "DEBUG"

    model_config = SettingsConfigDict(env_file=".env.test")


@pytest.fixture(scope="session")
def test_settings() -> TestSettings:
    """Test settings fixture."""
    return TestSettings()


@pytest.fixture(autouse=True)
def override_settings(test_settings: TestSettings) -> Generator[TestSettings, None, None]:
    """Install test settings as the global settings instance."""
    previous = settings_module.settings
    settings_module.settings = test_settings
    yield test_settings
    settings_module.settings = previous


@pytest.fixture(scope="session")
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp(prefix="h2i_test_"))
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def config_resolver() -> ConfigResolver:
    """Config resolver with built-in defaults."""
    return ConfigResolver()


@pytest.fixture
def default_config() -> EffectiveConfig:
    """Default effective configuration."""
    return EffectiveConfig()


@pytest.fixture
def fast_options() -> InvocationOptions:
    """Invocation options that skip the post-load grace period."""
    return InvocationOptions(wait_ms=0)


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    """Renderer double recording sessions."""
    return FakeRenderer()


@pytest.fixture
def renderer_factory(fake_renderer: FakeRenderer) -> Callable[[], FakeRenderer]:
    """Factory handing out the shared fake renderer."""
    return lambda: fake_renderer


@pytest.fixture
def sample_html() -> str:
    """Structurally valid document."""
    return make_document("Sample")


@pytest.fixture
def invalid_html() -> str:
    """Document missing the html and body tags."""
    return "<div>Just a fragment</div>"


@pytest.fixture
def html_dir(tmp_path: Path) -> Path:
    """Folder holding a.html and b.html."""
    folder = tmp_path / "docs"
    folder.mkdir()
    (folder / "a.html").write_text(make_document("A"), encoding="utf-8")
    (folder / "b.html").write_text(make_document("B"), encoding="utf-8")
    return folder


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Conventional project layout: html-files/work plus html-files/assets."""
    root = tmp_path / "html-files"
    work = root / "work"
    assets = root / "assets"
    work.mkdir(parents=True)
    assets.mkdir()
    (assets / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\nlogo")
    (assets / "style.css").write_text("body { color: #333; }", encoding="utf-8")
    return work


@pytest.fixture
def documents(html_dir: Path) -> List[Path]:
    """Sorted documents of html_dir."""
    return sorted(html_dir.glob("*.html"))
