"""
Render Capture
==============

Drives one renderer session per conversion job through the states
QUEUED -> CONTENT_LOADING -> AWAITING_READY -> CAPTURING -> DONE, with FAILED
reachable from any of them. Failures are returned as JobResults; nothing
raised inside a job escapes to the batch.
"""

from typing import Any, Optional, TYPE_CHECKING
from pathlib import Path
import asyncio
import re

from html_to_image.config.logging import get_logger
from html_to_image.models.schemas import (
    CaptureOptions,
    ConversionJob,
    EffectiveConfig,
    InlineDirectives,
    JobResult,
    JobState,
    OutputFormat,
    ReadyKind,
)

if TYPE_CHECKING:
    from html_to_image.core.pipeline import PipelineContext

logger = get_logger(__name__)

INVALID_HTML_MESSAGE = "Invalid HTML: document must contain <html> and <body> tags"

_HTML_TAG_RE = re.compile(r"<html[^>]*>", re.IGNORECASE)
_BODY_TAG_RE = re.compile(r"<body[^>]*>", re.IGNORECASE)


def is_valid_document(markup: str) -> bool:
    """Check for the minimal structural tags."""
    return bool(_HTML_TAG_RE.search(markup)) and bool(_BODY_TAG_RE.search(markup))


def derive_output_path(
    source_path: Path,
    config: EffectiveConfig,
    inline: Optional[InlineDirectives] = None,
    output_dir: Optional[Path] = None,
    suffix: Optional[str] = None,
    work_dir_name: str = "work",
    output_dir_name: str = "output",
) -> Path:
    """
    Determine where the image for a document is written.

    The directory is the explicit output directory, else the inline ``outDir``
    (relative to the document), else the document's own directory. Images
    that would land in the transient work folder go to its sibling output
    folder instead.
    """
    source_path = Path(source_path)
    inline = inline or InlineDirectives()

    if output_dir is not None:
        directory = Path(output_dir)
    elif inline.out_dir:
        directory = source_path.parent / inline.out_dir
    else:
        directory = source_path.parent

    if directory.name == work_dir_name:
        directory = directory.parent / output_dir_name

    final_suffix = suffix or inline.suffix or ""
    return directory / f"{source_path.stem}{final_suffix}.{config.output.format}"


def build_capture_options(config: EffectiveConfig) -> CaptureOptions:
    """Format-specific capture options for a configuration."""
    output = config.output
    fmt = OutputFormat(output.format)
    transparent = output.background == "transparent"

    return CaptureOptions(
        format=fmt,
        quality=output.quality if fmt in (OutputFormat.JPEG, OutputFormat.WEBP) else None,
        full_page=output.full_page,
        omit_background=transparent and fmt in (OutputFormat.PNG, OutputFormat.WEBP),
        background=None if transparent else output.background,
    )


class RenderCapture:
    """Render and capture a single conversion job."""

    def __init__(self, context: "PipelineContext"):
        self.context = context
        self.settings = context.settings
        self.logger: Any = logger.bind(component="render_capture")  # structlog.BoundLoggerBase

    async def render(self, job: ConversionJob) -> JobResult:
        """
        Convert one document into an image.

        Args:
            job: Conversion job

        Returns:
            JobResult; success is False with an error message on failure
        """
        log = self.logger.bind(document=str(job.source_path))
        state = JobState.QUEUED

        if not is_valid_document(job.markup):
            log.error("Invalid document", error=INVALID_HTML_MESSAGE)
            return self._failed(job, INVALID_HTML_MESSAGE)

        session = None
        try:
            resolver = await self.context.get_asset_resolver()
            markup = resolver.rewrite(job.markup, job.source_path)

            renderer = await self.context.get_renderer()
            session = await renderer.open_session(job.config.viewport)

            state = JobState.CONTENT_LOADING
            log.debug("Loading content", state=state.value)
            try:
                await session.load(markup, job.config.timeouts.page_load)
            except Exception as e:
                raise RuntimeError(
                    f"Page load failed within {job.config.timeouts.page_load}ms: {e}"
                ) from e

            state = JobState.AWAITING_READY
            await self._await_ready(session, job.config, log)

            state = JobState.CAPTURING
            log.debug("Capturing", state=state.value, output=str(job.output_path))
            image_bytes = await session.capture(build_capture_options(job.config))
            await asyncio.to_thread(self._write_image, job.output_path, image_bytes)

        except Exception as e:
            log.error("Conversion failed", state=state.value, error=str(e))
            return self._failed(job, str(e))
        finally:
            if session is not None:
                try:
                    await session.close()
                except Exception as e:
                    log.warning("Failed to close render session", error=str(e))

        log.info("Saved image", output=str(job.output_path))
        return JobResult(
            success=True,
            input_path=job.source_path,
            output_path=job.output_path,
            config=job.config,
            state=JobState.DONE,
        )

    async def _await_ready(self, session: Any, config: EffectiveConfig, log: Any) -> None:
        """Best-effort readiness waits; none of them fail the job."""
        if config.timeouts.asset_load > 0:
            await asyncio.sleep(config.timeouts.asset_load / 1000)

        for kind in (ReadyKind.FONTS, ReadyKind.IMAGES):
            try:
                await session.wait_ready(kind, self.settings.ready_timeout_ms)
            except Exception as e:
                log.warning("Readiness wait incomplete, continuing", kind=kind.value, error=str(e))

    @staticmethod
    def _write_image(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    @staticmethod
    def _failed(job: ConversionJob, message: str) -> JobResult:
        return JobResult(
            success=False,
            input_path=job.source_path,
            error=message,
            state=JobState.FAILED,
        )
