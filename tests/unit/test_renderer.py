"""
Unit Tests for Renderer
=======================

Unit tests for the Playwright renderer and session with Playwright mocked,
plus WebP transcoding.
"""

import io
from unittest.mock import AsyncMock, Mock, patch

import pytest
from PIL import Image

from html_to_image.core.rendering.renderer import (
    PlaywrightRenderer,
    PlaywrightSession,
    RenderError,
    transcode_to_webp,
)
from html_to_image.models.schemas import CaptureOptions, OutputFormat, ReadyKind, ViewportConfig


def png_bytes(mode: str = "RGBA") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (4, 3), (255, 0, 0, 128) if mode == "RGBA" else (255, 0, 0)).save(
        buffer, format="PNG"
    )
    return buffer.getvalue()


class TestRenderError:
    """Test render error handling."""

    def test_render_error_creation(self):
        """Test creating render error."""
        error = RenderError("Test error message")
        assert str(error) == "Test error message"
        assert isinstance(error, Exception)


class TestPlaywrightRenderer:
    """Test browser lifecycle."""

    @pytest.fixture
    def renderer(self):
        """Create renderer instance."""
        return PlaywrightRenderer(headless=True, launch_args=["--no-sandbox"])

    def test_defaults_from_settings(self, test_settings):
        """Test that settings provide launch defaults."""
        renderer = PlaywrightRenderer()
        assert renderer.headless is test_settings.playwright_headless
        assert renderer.launch_args == test_settings.browser_args
        assert renderer.browser is None

    @pytest.mark.asyncio
    async def test_start_launches_chromium_once(self, renderer):
        """Test successful browser start."""
        mock_browser = AsyncMock()
        mock_playwright = AsyncMock()
        mock_playwright.chromium.launch.return_value = mock_browser

        with patch("html_to_image.core.rendering.renderer.async_playwright") as mock_async_playwright:
            mock_async_playwright.return_value.start = AsyncMock(return_value=mock_playwright)

            await renderer.start()
            await renderer.start()

        assert renderer.browser is mock_browser
        mock_playwright.chromium.launch.assert_awaited_once_with(headless=True, args=["--no-sandbox"])

    @pytest.mark.asyncio
    async def test_start_failure(self, renderer):
        """Test browser start failure."""
        with patch("html_to_image.core.rendering.renderer.async_playwright") as mock_async_playwright:
            mock_async_playwright.return_value.start = AsyncMock(side_effect=Exception("no browser"))

            with pytest.raises(RenderError, match="Browser initialization failed: no browser"):
                await renderer.start()

        assert renderer.browser is None

    @pytest.mark.asyncio
    async def test_open_session_requires_start(self, renderer):
        """Test that sessions need a started browser."""
        with pytest.raises(RenderError, match="Renderer not started"):
            await renderer.open_session(ViewportConfig())

    @pytest.mark.asyncio
    async def test_open_session_uses_viewport(self, renderer):
        """Test that the context gets the viewport and scale factor."""
        mock_context = AsyncMock()
        renderer.browser = AsyncMock()
        renderer.browser.new_context.return_value = mock_context

        session = await renderer.open_session(ViewportConfig(width=1080, height=1440, device_scale_factor=1.5))

        renderer.browser.new_context.assert_awaited_once_with(
            viewport={"width": 1080, "height": 1440}, device_scale_factor=1.5
        )
        assert isinstance(session, PlaywrightSession)

    @pytest.mark.asyncio
    async def test_open_session_closes_context_on_failure(self, renderer):
        """Test that a failed page creation releases the context."""
        mock_context = AsyncMock()
        mock_context.new_page.side_effect = Exception("page failed")
        renderer.browser = AsyncMock()
        renderer.browser.new_context.return_value = mock_context

        with pytest.raises(Exception, match="page failed"):
            await renderer.open_session(ViewportConfig())

        mock_context.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close(self, renderer):
        """Test closing browser and playwright."""
        mock_browser = AsyncMock()
        mock_playwright = AsyncMock()
        renderer.browser = mock_browser
        renderer._playwright = mock_playwright

        await renderer.close()

        mock_browser.close.assert_awaited_once()
        mock_playwright.stop.assert_awaited_once()
        assert renderer.browser is None


class TestPlaywrightSession:
    """Test session operations against a mocked page."""

    @pytest.fixture
    def page(self):
        """Mock page."""
        page = AsyncMock()
        page.set_default_timeout = Mock()
        page.set_default_navigation_timeout = Mock()
        page.screenshot.return_value = png_bytes()
        return page

    @pytest.fixture
    def session(self, page):
        """Session over the mock page."""
        return PlaywrightSession(AsyncMock(), page, image_timeout_ms=100)

    @pytest.mark.asyncio
    async def test_load(self, session, page):
        """Test that content loads with the timeout."""
        await session.load("<html><body></body></html>", 5000)

        page.set_content.assert_awaited_once_with(
            "<html><body></body></html>", wait_until="networkidle", timeout=5000
        )

    @pytest.mark.asyncio
    async def test_wait_ready_images_passes_per_image_timeout(self, session, page):
        """Test the images readiness script argument."""
        await session.wait_ready(ReadyKind.IMAGES, 1000)

        assert page.evaluate.await_args[0][1] == 100

    @pytest.mark.asyncio
    async def test_png_transparent_capture(self, session, page):
        """Test png with omitted background."""
        await session.capture(CaptureOptions(format=OutputFormat.PNG, omit_background=True))

        page.screenshot.assert_awaited_once_with(type="png", full_page=True, omit_background=True)
        page.evaluate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_jpeg_capture_paints_background(self, session, page):
        """Test jpeg with quality and painted background."""
        await session.capture(
            CaptureOptions(format=OutputFormat.JPEG, quality=80, full_page=False, background="#fff")
        )

        page.evaluate.assert_awaited_once()
        assert page.evaluate.await_args[0][1] == "#fff"
        page.screenshot.assert_awaited_once_with(type="jpeg", full_page=False, quality=80)

    @pytest.mark.asyncio
    async def test_webp_capture_transcodes(self, session, page):
        """Test that webp is captured as png and transcoded."""
        data = await session.capture(
            CaptureOptions(format=OutputFormat.WEBP, quality=70, omit_background=True)
        )

        page.screenshot.assert_awaited_once_with(type="png", full_page=True, omit_background=True)
        assert Image.open(io.BytesIO(data)).format == "WEBP"

    @pytest.mark.asyncio
    async def test_close(self, session):
        """Test that closing the session closes its context."""
        await session.close()
        session.context.close.assert_awaited_once()


class TestTranscode:
    """Test PNG to WebP transcoding."""

    def test_rgba_preserved(self):
        """Test transcoding keeps dimensions and alpha."""
        image = Image.open(io.BytesIO(transcode_to_webp(png_bytes("RGBA"), 80)))

        assert image.format == "WEBP"
        assert image.size == (4, 3)
        assert image.mode == "RGBA"

    def test_palette_converted(self):
        """Test that palette images are converted first."""
        buffer = io.BytesIO()
        Image.new("P", (2, 2)).save(buffer, format="PNG")

        image = Image.open(io.BytesIO(transcode_to_webp(buffer.getvalue())))

        assert image.format == "WEBP"
