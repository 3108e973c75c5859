"""
Pydantic Models and Schemas
===========================

Core data models for configuration layers, conversion jobs, batch results and
generated documents. Configuration groups accept the camelCase keys used in
config files and inline directives as well as their snake_case field names.
"""

from typing import Optional, List, Dict, Any, Tuple
from enum import Enum
from pathlib import Path
import shutil

from pydantic import BaseModel, ConfigDict, Field, AliasChoices
from pydantic.alias_generators import to_camel


# Enums
class OutputFormat(str, Enum):
    """Supported image formats."""
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"


class JobState(str, Enum):
    """Render-and-capture states of a conversion job."""
    QUEUED = "queued"
    CONTENT_LOADING = "content_loading"
    AWAITING_READY = "awaiting_ready"
    CAPTURING = "capturing"
    DONE = "done"
    FAILED = "failed"


class ReadyKind(str, Enum):
    """Readiness conditions a render session can wait for."""
    FONTS = "fonts"
    IMAGES = "images"


# Effective configuration groups
_GROUP_CONFIG = ConfigDict(
    alias_generator=to_camel, populate_by_name=True, extra="forbid", frozen=True
)


class ViewportConfig(BaseModel):
    """Viewport dimensions and pixel density."""
    model_config = _GROUP_CONFIG

    width: int = Field(1200, description="Viewport width in pixels")
    height: int = Field(800, description="Viewport height in pixels")
    device_scale_factor: float = Field(2.0, description="Device pixel ratio")


class OutputConfig(BaseModel):
    """Image output settings."""
    model_config = _GROUP_CONFIG

    format: str = Field("png", description="Image format: png, jpeg or webp")
    quality: int = Field(90, description="Quality for lossy formats (1-100)")
    full_page: bool = Field(True, description="Capture full page instead of viewport")
    background: str = Field("transparent", description="Background colour or 'transparent'")


class TimeoutConfig(BaseModel):
    """Timeouts in milliseconds."""
    model_config = _GROUP_CONFIG

    page_load: int = Field(30000, description="Page load ceiling")
    asset_load: int = Field(2000, description="Grace period after load")


class ProcessingConfig(BaseModel):
    """Batch processing settings."""
    model_config = _GROUP_CONFIG

    parallel: bool = Field(True, description="Render documents concurrently")
    max_concurrent: int = Field(3, description="Maximum concurrent renders")


class EffectiveConfig(BaseModel):
    """Resolved configuration for one conversion."""
    model_config = _GROUP_CONFIG

    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)


# Partial configuration layers
_LAYER_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ViewportLayer(BaseModel):
    model_config = _LAYER_CONFIG

    width: Optional[int] = None
    height: Optional[int] = None
    device_scale_factor: Optional[float] = None


class OutputLayer(BaseModel):
    model_config = _LAYER_CONFIG

    format: Optional[str] = None
    quality: Optional[int] = None
    full_page: Optional[bool] = None
    background: Optional[str] = None


class TimeoutLayer(BaseModel):
    model_config = _LAYER_CONFIG

    page_load: Optional[int] = None
    asset_load: Optional[int] = None


class ProcessingLayer(BaseModel):
    model_config = _LAYER_CONFIG

    parallel: Optional[bool] = None
    max_concurrent: Optional[int] = None


class LoggingLayer(BaseModel):
    """Logging section of legacy config files; accepted and not merged."""
    model_config = _LAYER_CONFIG

    level: Optional[str] = None
    verbose: Optional[bool] = None


class PartialConfig(BaseModel):
    """One configuration layer. Only the keys it sets take part in a merge."""
    model_config = _LAYER_CONFIG

    viewport: Optional[ViewportLayer] = None
    output: Optional[OutputLayer] = None
    timeouts: Optional[TimeoutLayer] = None
    processing: Optional[ProcessingLayer] = None
    logging: Optional[LoggingLayer] = None


class InvocationOptions(BaseModel):
    """Options supplied by the caller for a whole invocation."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    format: Optional[str] = None
    quality: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    scale: Optional[float] = None
    full_page: Optional[bool] = None
    background: Optional[str] = None
    concurrency: Optional[int] = None
    wait_ms: Optional[int] = None
    page_load_timeout: Optional[int] = None
    output_dir: Optional[Path] = None
    suffix: Optional[str] = None
    preset: Optional[str] = None

    def to_layer(self) -> PartialConfig:
        """Convert to a configuration layer."""
        return PartialConfig(
            viewport=ViewportLayer(
                width=self.width, height=self.height, device_scale_factor=self.scale
            ),
            output=OutputLayer(
                format=self.format,
                quality=self.quality,
                full_page=self.full_page,
                background=self.background,
            ),
            timeouts=TimeoutLayer(page_load=self.page_load_timeout, asset_load=self.wait_ms),
            processing=ProcessingLayer(max_concurrent=self.concurrency),
        )


class InlineDirectives(BaseModel):
    """Configuration embedded in a document."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    format: Optional[str] = None
    quality: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    device_scale_factor: Optional[float] = Field(
        None, validation_alias=AliasChoices("deviceScaleFactor", "scale", "device_scale_factor")
    )
    full_page: Optional[bool] = Field(
        None, validation_alias=AliasChoices("fullPage", "full_page")
    )
    background: Optional[str] = None
    wait_ms: Optional[int] = Field(None, validation_alias=AliasChoices("waitMs", "wait_ms"))
    out_dir: Optional[str] = Field(None, validation_alias=AliasChoices("outDir", "out_dir"))
    suffix: Optional[str] = None

    def to_layer(self) -> PartialConfig:
        """Convert to a configuration layer."""
        return PartialConfig(
            viewport=ViewportLayer(
                width=self.width,
                height=self.height,
                device_scale_factor=self.device_scale_factor,
            ),
            output=OutputLayer(
                format=self.format,
                quality=self.quality,
                full_page=self.full_page,
                background=self.background,
            ),
            timeouts=TimeoutLayer(asset_load=self.wait_ms),
        )


class Preset(BaseModel):
    """Named set of dimensions and output defaults."""
    name: str
    label: str
    width: int
    height: int
    background: str = "transparent"
    suffix: str = ""


# Rendering Models
class CaptureOptions(BaseModel):
    """Options handed to a render session's capture step."""
    format: OutputFormat = OutputFormat.PNG
    quality: Optional[int] = Field(None, ge=1, le=100)
    full_page: bool = True
    omit_background: bool = False
    background: Optional[str] = None


class ConversionJob(BaseModel):
    """One document to render."""
    source_path: Path = Field(..., description="HTML document path")
    markup: str = Field(..., description="Document markup as read from disk")
    config: EffectiveConfig = Field(..., description="Resolved configuration")
    output_path: Path = Field(..., description="Image destination")


class JobResult(BaseModel):
    """Outcome of one conversion job."""
    success: bool = Field(..., description="Whether the image was written")
    input_path: Path = Field(..., description="Source document")
    output_path: Optional[Path] = Field(None, description="Written image")
    error: Optional[str] = Field(None, description="Failure message")
    config: Optional[EffectiveConfig] = Field(None, description="Configuration used")
    state: JobState = Field(JobState.DONE, description="Final job state")


BatchResult = List[JobResult]


class BatchSummary(BaseModel):
    """Aggregated outcome of a batch."""
    successful: int = 0
    failed: int = 0
    total: int = 0
    success_rate: float = 0.0
    converted: List[Tuple[Path, Path]] = Field(default_factory=list)
    failures: List[Tuple[Path, str]] = Field(default_factory=list)


class ArchiveExtraction(BaseModel):
    """Working directory holding the contents of one extracted archive."""
    archive_path: Path
    extract_path: Path
    html_files: List[Path] = Field(default_factory=list)

    def cleanup(self) -> None:
        """Remove the working directory; a missing directory is ignored."""
        if self.extract_path.exists():
            shutil.rmtree(self.extract_path, ignore_errors=True)


# AI Models
class SamplingOptions(BaseModel):
    """Sampling parameters for text generation."""
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_output_tokens: Optional[int] = Field(None, gt=0)


class GeneratedDocument(BaseModel):
    """HTML document produced by text generation."""
    filename: str
    markup: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
