"""
Renderer
========

Renderer interface consumed by the capture pipeline, and its Playwright
implementation. One browser process is shared by a pipeline; every job gets
its own browser context (session) so cookies, viewport and content never leak
between documents.
"""

from typing import Optional, Any, List
from abc import ABC, abstractmethod
import asyncio
import io

from playwright.async_api import async_playwright, Browser, BrowserContext, Page
from PIL import Image  # type: ignore

from html_to_image.config.logging import get_logger
from html_to_image.config.settings import get_settings
from html_to_image.models.schemas import (
    CaptureOptions,
    OutputFormat,
    ReadyKind,
    ViewportConfig,
)

logger = get_logger(__name__)

_FONTS_READY_SCRIPT = """
() => document.fonts ? document.fonts.ready.then(() => true) : true
"""

_IMAGES_READY_SCRIPT = """
(perImageTimeout) => Promise.all(
    Array.from(document.images)
        .filter((img) => !img.complete)
        .map((img) => new Promise((resolve) => {
            img.addEventListener('load', resolve, { once: true });
            img.addEventListener('error', resolve, { once: true });
            setTimeout(resolve, perImageTimeout);
        }))
).then(() => true)
"""

_BACKGROUND_SCRIPT = """
(color) => {
    document.documentElement.style.background = color;
    if (document.body) {
        document.body.style.background = color;
    }
}
"""


class RenderError(Exception):
    """Exception raised when the renderer fails."""

    pass


class RenderSession(ABC):
    """One isolated rendering session, used by exactly one job."""

    @abstractmethod
    async def load(self, markup: str, timeout_ms: int) -> None:
        """Load markup, failing if it does not finish within the timeout."""
        pass

    @abstractmethod
    async def wait_ready(self, kind: ReadyKind, timeout_ms: int) -> None:
        """Wait for a readiness condition."""
        pass

    @abstractmethod
    async def capture(self, options: CaptureOptions) -> bytes:
        """Capture the rendered page as encoded image bytes."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the session."""
        pass


class BaseRenderer(ABC):
    """Renderer process shared by all sessions of a pipeline."""

    @abstractmethod
    async def start(self) -> None:
        pass

    @abstractmethod
    async def open_session(self, viewport: ViewportConfig) -> RenderSession:
        """Open a new isolated session with the given viewport."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class PlaywrightSession(RenderSession):
    """Render session backed by a Playwright browser context."""

    def __init__(self, context: BrowserContext, page: Page, image_timeout_ms: int):
        self.context = context
        self.page = page
        self.image_timeout_ms = image_timeout_ms
        self.logger: Any = logger.bind(component="render_session")  # structlog.BoundLoggerBase

    async def load(self, markup: str, timeout_ms: int) -> None:
        self.page.set_default_timeout(timeout_ms)
        self.page.set_default_navigation_timeout(timeout_ms)
        await self.page.set_content(markup, wait_until="networkidle", timeout=timeout_ms)

    async def wait_ready(self, kind: ReadyKind, timeout_ms: int) -> None:
        if kind == ReadyKind.FONTS:
            waiter = self.page.evaluate(_FONTS_READY_SCRIPT)
        else:
            waiter = self.page.evaluate(_IMAGES_READY_SCRIPT, self.image_timeout_ms)
        await asyncio.wait_for(waiter, timeout=timeout_ms / 1000)

    async def capture(self, options: CaptureOptions) -> bytes:
        if options.background and not options.omit_background:
            await self.page.evaluate(_BACKGROUND_SCRIPT, options.background)

        # Chromium only encodes png and jpeg; webp is transcoded below
        shot_type = "jpeg" if options.format == OutputFormat.JPEG else "png"
        screenshot_options: dict = {"type": shot_type, "full_page": options.full_page}
        if shot_type == "jpeg" and options.quality is not None:
            screenshot_options["quality"] = options.quality
        if shot_type == "png" and options.omit_background:
            screenshot_options["omit_background"] = True

        image_bytes = await self.page.screenshot(**screenshot_options)

        if options.format == OutputFormat.WEBP:
            image_bytes = transcode_to_webp(image_bytes, options.quality)
        return image_bytes

    async def close(self) -> None:
        await self.context.close()


def transcode_to_webp(png_bytes: bytes, quality: Optional[int] = None) -> bytes:
    """
    Convert PNG bytes to WebP using PIL.

    Args:
        png_bytes: PNG image
        quality: WebP quality (1-100)

    Returns:
        WebP bytes
    """
    image = Image.open(io.BytesIO(png_bytes))  # type: ignore[attr-defined]
    if image.mode not in ("RGB", "RGBA"):  # type: ignore[attr-defined]
        image = image.convert("RGBA")  # type: ignore[attr-defined]

    output = io.BytesIO()
    image.save(output, format="WEBP", quality=quality or 90, method=4)  # type: ignore[attr-defined]
    return output.getvalue()


class PlaywrightRenderer(BaseRenderer):
    """Chromium renderer driven by Playwright."""

    def __init__(self, headless: Optional[bool] = None, launch_args: Optional[List[str]] = None):
        self.settings = get_settings()
        self.headless = self.settings.playwright_headless if headless is None else headless
        self.launch_args = launch_args if launch_args is not None else self.settings.browser_args
        self.browser: Optional[Browser] = None
        self._playwright = None
        self.logger: Any = logger.bind(component="renderer")  # structlog.BoundLoggerBase

    async def start(self) -> None:
        """Launch the browser."""
        if self.browser is not None:
            return

        try:
            self._playwright = await async_playwright().start()
            self.browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=self.launch_args,
            )
            self.logger.info("Browser started", headless=self.headless)
        except Exception as e:
            self.logger.error("Failed to start browser", error=str(e))
            await self.close()
            raise RenderError(f"Browser initialization failed: {e}")

    async def open_session(self, viewport: ViewportConfig) -> RenderSession:
        if self.browser is None:
            raise RenderError("Renderer not started")

        context = await self.browser.new_context(
            viewport={"width": viewport.width, "height": viewport.height},
            device_scale_factor=viewport.device_scale_factor,
        )
        try:
            page = await context.new_page()
        except Exception:
            await context.close()
            raise
        return PlaywrightSession(context, page, self.settings.image_timeout_ms)

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        if self.browser is not None:
            await self.browser.close()
            self.browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

        self.logger.info("Browser closed")
