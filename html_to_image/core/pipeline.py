"""
Conversion Pipeline
===================

Pipeline context owning the shared renderer and asset server, and the
orchestrator that turns an input path into a batch of conversion jobs,
runs them and reports the outcome.
"""

from typing import Any, Callable, List, Optional, Sequence, Tuple, Union
from pathlib import Path
import asyncio
import os

from html_to_image.config.logging import get_logger
from html_to_image.config.settings import Settings, get_settings
from html_to_image.core.ingest.archive import ArchiveError, ArchiveIngestor, HTML_EXTENSIONS
from html_to_image.core.queue.batch_scheduler import BatchScheduler
from html_to_image.core.queue.report import ReportAggregator
from html_to_image.core.rendering.asset_resolver import AssetResolver
from html_to_image.core.rendering.render_capture import RenderCapture, derive_output_path
from html_to_image.core.rendering.renderer import BaseRenderer, PlaywrightRenderer
from html_to_image.core.resolution.config_resolver import (
    ConfigResolver,
    ConfigValidationError,
    apply_preset,
)
from html_to_image.models.schemas import (
    ArchiveExtraction,
    BatchResult,
    BatchSummary,
    ConversionJob,
    InvocationOptions,
    PartialConfig,
)

logger = get_logger(__name__)

RendererFactory = Callable[[], BaseRenderer]


class InputError(Exception):
    """Exception raised when the input path cannot be processed."""

    pass


class PipelineContext:
    """
    Shared resources of one conversion run.

    The renderer and the asset server are started lazily on first use and
    released by ``close()``, which is also called on exit from ``async with``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        renderer_factory: Optional[RendererFactory] = None,
        asset_root: Optional[Path] = None,
    ):
        self.settings = settings or get_settings()
        self.renderer_factory: RendererFactory = renderer_factory or PlaywrightRenderer
        self.asset_root = Path(asset_root) if asset_root else self.settings.resolved_asset_root()
        self._renderer: Optional[BaseRenderer] = None
        self._asset_resolver: Optional[AssetResolver] = None
        self._lock = asyncio.Lock()
        self.logger: Any = logger.bind(component="pipeline_context")  # structlog.BoundLoggerBase

    async def get_renderer(self) -> BaseRenderer:
        """Get the shared renderer, starting it on first use."""
        async with self._lock:
            if self._renderer is None:
                renderer = self.renderer_factory()
                await renderer.start()
                self._renderer = renderer
            return self._renderer

    async def get_asset_resolver(self) -> AssetResolver:
        """Get the shared asset resolver, starting its server on first use."""
        async with self._lock:
            if self._asset_resolver is None:
                resolver = AssetResolver(
                    root=self.asset_root,
                    host=self.settings.asset_host,
                    work_dir_name=self.settings.work_dir_name,
                    work_fallback=self.settings.asset_work_fallback,
                    search_paths=self.settings.asset_search_paths,
                )
                await resolver.start_server()
                self._asset_resolver = resolver
            return self._asset_resolver

    async def close(self) -> None:
        """Release the renderer and the asset server. Safe to call repeatedly."""
        async with self._lock:
            renderer, self._renderer = self._renderer, None
            resolver, self._asset_resolver = self._asset_resolver, None

        if renderer is not None:
            try:
                await renderer.close()
            except Exception as e:
                self.logger.error("Failed to close renderer", error=str(e))

        if resolver is not None:
            try:
                await resolver.stop_server()
            except Exception as e:
                self.logger.error("Failed to stop asset server", error=str(e))

    async def __aenter__(self) -> "PipelineContext":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


class ConversionOrchestrator:
    """Convert an input path into images."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        renderer_factory: Optional[RendererFactory] = None,
        resolver: Optional[ConfigResolver] = None,
        ingestor: Optional[ArchiveIngestor] = None,
    ):
        self.settings = settings or get_settings()
        self.renderer_factory = renderer_factory
        self.resolver = resolver or ConfigResolver()
        self.ingestor = ingestor or ArchiveIngestor()
        self.logger: Any = logger.bind(component="orchestrator")  # structlog.BoundLoggerBase

    async def convert(
        self,
        input_path: Union[str, Path],
        options: Optional[InvocationOptions] = None,
        config_file: Optional[Path] = None,
    ) -> BatchSummary:
        """
        Convert every document reachable from an input path.

        Args:
            input_path: HTML document, archive or directory
            options: Invocation options
            config_file: Persisted config file; settings default when None

        Returns:
            Batch summary

        Raises:
            ConfigValidationError: If the base or any inline configuration is invalid
            InputError: If the input path cannot be processed
            ArchiveError: If a single archive input cannot be extracted
        """
        options = apply_preset(options or InvocationOptions())
        file_layer = self.resolver.load_file_config(config_file or self.settings.config_file)
        base_config = self.resolver.ensure_valid(self.resolver.resolve(file_layer, options))

        for line in ConfigResolver.describe(base_config, verbose=self.settings.debug):
            self.logger.info(line)

        documents, extractions = await self.collect_documents(Path(input_path))
        try:
            if not documents:
                self.logger.warning("No HTML documents found", path=str(input_path))
                return ReportAggregator.summarize([])

            self.logger.info("Found documents", count=len(documents))
            results = await self.convert_files(
                documents,
                options,
                file_layer=file_layer,
                archive_output=bool(extractions),
            )
        finally:
            for extraction in extractions:
                extraction.cleanup()

        summary = ReportAggregator.summarize(results)
        self.logger.info(
            "Batch complete",
            successful=summary.successful,
            failed=summary.failed,
            success_rate=round(summary.success_rate, 1),
        )
        return summary

    async def convert_files(
        self,
        paths: Sequence[Path],
        options: Optional[InvocationOptions] = None,
        file_layer: Optional[PartialConfig] = None,
        archive_output: bool = False,
    ) -> BatchResult:
        """
        Render a list of documents as one batch.

        Args:
            paths: HTML documents
            options: Invocation options (preset already applied)
            file_layer: Persisted config layer
            archive_output: Default the output directory to ``<cwd>/output``

        Returns:
            One result per document, in document order
        """
        options = options or InvocationOptions()
        base_config = self.resolver.resolve(file_layer, options)
        output_dir = options.output_dir
        if output_dir is None and archive_output:
            output_dir = Path.cwd() / self.settings.output_dir_name

        jobs = self.prepare_jobs(paths, options, file_layer, output_dir)

        concurrency = (
            base_config.processing.max_concurrent if base_config.processing.parallel else 1
        )
        async with PipelineContext(
            self.settings, self.renderer_factory, asset_root=self._asset_root_for(paths)
        ) as context:
            scheduler = BatchScheduler(RenderCapture(context))
            return await scheduler.run(jobs, concurrency)

    def prepare_jobs(
        self,
        paths: Sequence[Path],
        options: InvocationOptions,
        file_layer: Optional[PartialConfig] = None,
        output_dir: Optional[Path] = None,
    ) -> List[ConversionJob]:
        """
        Build one job per document with its effective configuration.

        Raises:
            InputError: If a document cannot be read
            ConfigValidationError: With the inline violations of every document
        """
        jobs: List[ConversionJob] = []
        errors: List[str] = []

        for path in paths:
            try:
                markup = Path(path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise InputError(f"Cannot read document {path}: {e}") from e

            try:
                inline = self.resolver.extract_inline_config(markup)
                config = self.resolver.resolve(file_layer, options, inline)
                self.resolver.ensure_valid(config)
            except ConfigValidationError as e:
                errors.extend(f"{Path(path).name}: {error}" for error in e.errors)
                continue

            jobs.append(
                ConversionJob(
                    source_path=Path(path),
                    markup=markup,
                    config=config,
                    output_path=derive_output_path(
                        Path(path),
                        config,
                        inline=inline,
                        output_dir=output_dir,
                        suffix=options.suffix,
                        work_dir_name=self.settings.work_dir_name,
                        output_dir_name=self.settings.output_dir_name,
                    ),
                )
            )

        if errors:
            raise ConfigValidationError(errors)
        return jobs

    async def collect_documents(
        self, input_path: Path
    ) -> Tuple[List[Path], List[ArchiveExtraction]]:
        """
        Collect the documents an input path refers to.

        Returns:
            Sorted documents and the extractions that own some of them
        """
        if not input_path.exists():
            raise InputError(f"Path not found: {input_path}")

        if input_path.is_file():
            suffix = input_path.suffix.lower()
            if suffix in HTML_EXTENSIONS:
                return [input_path], []
            if self.ingestor.is_archive(input_path):
                extraction = await asyncio.to_thread(self.ingestor.process_archive, input_path)
                return extraction.html_files, [extraction]
            raise InputError(
                f"Unsupported file format: {suffix or input_path.name}. Use .html, .zip or .rar"
            )

        documents = sorted(
            path
            for path in input_path.iterdir()
            if path.is_file() and path.suffix.lower() in HTML_EXTENSIONS
        )
        if documents:
            return documents, []

        extractions: List[ArchiveExtraction] = []
        archives = sorted(p for p in input_path.iterdir() if p.is_file() and self.ingestor.is_archive(p))
        try:
            for archive in archives:
                try:
                    extraction = await asyncio.to_thread(self.ingestor.process_archive, archive)
                except ArchiveError as e:
                    self.logger.error("Skipping archive", archive=archive.name, error=str(e))
                    continue
                extractions.append(extraction)
        except BaseException:
            for extraction in extractions:
                extraction.cleanup()
            raise

        documents = sorted(path for extraction in extractions for path in extraction.html_files)
        return documents, extractions

    def _asset_root_for(self, paths: Sequence[Path]) -> Path:
        """Narrowest directory covering every document and its asset fallbacks."""
        if self.settings.asset_root is not None:
            return self.settings.resolved_asset_root()

        directories = set()
        for path in paths:
            directory = Path(path).resolve().parent
            if self.settings.asset_work_fallback and directory.name == self.settings.work_dir_name:
                directory = directory.parent
            directories.add(str(directory))
        directories.update(str(Path(p).resolve()) for p in self.settings.asset_search_paths)

        if not directories:
            return self.settings.resolved_asset_root()
        return Path(os.path.commonpath(sorted(directories)))
