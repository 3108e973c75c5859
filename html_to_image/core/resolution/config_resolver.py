"""
Config Resolver
===============

Layered configuration engine. Merges built-in defaults, a persisted config
file, invocation options and inline per-document directives into one
EffectiveConfig, and validates it against documented bounds with Cerberus.
"""

from typing import Any, Dict, List, Optional, Union
from pathlib import Path
import json
import re

import yaml  # type: ignore[import-untyped]
from cerberus import Validator  # type: ignore[import-untyped]
from pydantic import ValidationError

from html_to_image.config.logging import get_logger
from html_to_image.models.schemas import (
    EffectiveConfig,
    InlineDirectives,
    InvocationOptions,
    OutputFormat,
    PartialConfig,
    Preset,
)

logger = get_logger(__name__)

# Groups taking part in a merge, in schema order
CONFIG_GROUPS = ("viewport", "output", "timeouts", "processing")

INLINE_CONFIG_ID = "h2i-config"
META_PREFIX = "h2i:"

_INLINE_JSON_RE = re.compile(
    r"<script\b(?=[^>]*\bid\s*=\s*[\"']" + INLINE_CONFIG_ID + r"[\"'])[^>]*>(.*?)</script>",
    re.IGNORECASE | re.DOTALL,
)
_META_TAG_RE = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)
_META_NAME_RE = re.compile(r"\bname\s*=\s*[\"']" + META_PREFIX + r"([^\"']+)[\"']", re.IGNORECASE)
_META_CONTENT_RE = re.compile(r"\bcontent\s*=\s*[\"']([^\"']*)[\"']", re.IGNORECASE)
_INT_RE = re.compile(r"^\d+$")
_FLOAT_RE = re.compile(r"^\d+\.\d+$")

KNOWN_INLINE_KEYS = {
    "format",
    "quality",
    "width",
    "height",
    "deviceScaleFactor",
    "scale",
    "fullPage",
    "background",
    "waitMs",
    "outDir",
    "suffix",
}

# (group, field) -> (min, max, unit) used for both the Cerberus schema and messages
BOUNDS: Dict[tuple, tuple] = {
    ("viewport", "width"): (1, 8000, "pixels"),
    ("viewport", "height"): (1, 8000, "pixels"),
    ("viewport", "device_scale_factor"): (0.1, 5, ""),
    ("output", "quality"): (1, 100, ""),
    ("timeouts", "page_load"): (1000, 120000, "ms"),
    ("timeouts", "asset_load"): (0, 30000, "ms"),
    ("processing", "max_concurrent"): (1, 10, ""),
}

PRESETS: Dict[str, Preset] = {
    "instagram": Preset(
        name="instagram", label="Instagram", width=1080, height=1440, suffix="-instagram"
    ),
    "stories": Preset(name="stories", label="Stories", width=1920, height=1080, suffix="-story"),
    "ppt": Preset(
        name="ppt", label="PowerPoint", width=1920, height=1080, background="#ffffff", suffix="-ppt"
    ),
    "generic": Preset(name="generic", label="Generic", width=1200, height=800, background="#ffffff"),
}

ConfigLayer = Union[PartialConfig, InvocationOptions, InlineDirectives]


class ConfigValidationError(Exception):
    """Exception raised when a configuration violates its bounds."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid configuration:\n" + "\n".join(f"- {e}" for e in self.errors))


def normalize_format(value: str) -> str:
    """Lower-case a format name and map the jpg alias to jpeg."""
    fmt = value.strip().lower()
    return "jpeg" if fmt == "jpg" else fmt


def coerce_directive_value(value: str) -> Union[str, int, float, bool]:
    """Coerce a meta directive string to bool, int or float when it looks like one."""
    if value == "true":
        return True
    if value == "false":
        return False
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    return value


def get_preset(name: str) -> Preset:
    """Look up a preset by name."""
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigValidationError(
            [f"Invalid preset: {name}. Use: {', '.join(PRESETS)}"]
        ) from None


def apply_preset(options: InvocationOptions) -> InvocationOptions:
    """
    Fill invocation options from the named preset.

    Explicit width, height and background given alongside the preset win.
    """
    if not options.preset:
        return options

    preset = get_preset(options.preset)
    return options.model_copy(
        update={
            "width": options.width if options.width is not None else preset.width,
            "height": options.height if options.height is not None else preset.height,
            "format": options.format or OutputFormat.PNG.value,
            "background": options.background or preset.background,
        }
    )


class ConfigValidator:
    """Range validation of an effective configuration using a Cerberus schema."""

    def __init__(self) -> None:
        self.logger: Any = logger.bind(component="config_validator")  # structlog.BoundLoggerBase
        self._setup_schema()

    def _setup_schema(self) -> None:
        """Setup validation schema from the bounds table."""
        schema: Dict[str, Any] = {
            "viewport": {"type": "dict", "schema": {}},
            "output": {
                "type": "dict",
                "schema": {
                    "format": {"type": "string", "allowed": [f.value for f in OutputFormat]},
                    "full_page": {"type": "boolean"},
                    "background": {"type": "string", "empty": False},
                },
            },
            "timeouts": {"type": "dict", "schema": {}},
            "processing": {"type": "dict", "schema": {"parallel": {"type": "boolean"}}},
        }
        for (group, field), (low, high, _unit) in BOUNDS.items():
            kind = "number" if isinstance(low, float) else "integer"
            schema[group]["schema"][field] = {"type": kind, "min": low, "max": high}
        self.schema = schema

    def validate(self, data: Dict[str, Any]) -> List[str]:
        """
        Validate configuration data.

        Args:
            data: Configuration as a nested snake_case dictionary

        Returns:
            List of violations, empty when the configuration is valid
        """
        validator = Validator(self.schema)  # type: ignore[misc]
        validator.allow_unknown = False  # type: ignore[attr-defined]

        if validator.validate(data):  # type: ignore[misc]
            return []
        return self._format_validation_errors(validator.errors, data)  # type: ignore[attr-defined]

    def _format_validation_errors(
        self, errors: Dict[str, Any], data: Dict[str, Any], path: str = ""
    ) -> List[str]:
        """Flatten nested Cerberus errors into readable messages."""
        formatted: List[str] = []

        for field in sorted(errors):
            current_path = f"{path}.{field}" if path else field
            value = data.get(field) if isinstance(data, dict) else None
            for error in errors[field]:
                if isinstance(error, dict):
                    formatted.extend(
                        self._format_validation_errors(error, value or {}, current_path)
                    )
                else:
                    formatted.append(self._describe_error(current_path, error, value))

        return formatted

    def _describe_error(self, path: str, error: str, value: Any) -> str:
        group, _, field = path.partition(".")
        bounds = BOUNDS.get((group, field))
        if bounds:
            low, high, unit = bounds
            hint = f"must be between {low} and {high}" + (f" {unit}" if unit else "")
            return f"{path}: {error} ({hint}, got {value!r})"
        if path == "output.format":
            allowed = ", ".join(f.value for f in OutputFormat)
            return f"{path}: invalid format {value!r}. Use: {allowed}"
        return f"{path}: {error}"


class ConfigResolver:
    """Resolve layered configuration into an EffectiveConfig."""

    def __init__(self, defaults: Optional[EffectiveConfig] = None) -> None:
        self.defaults = defaults or EffectiveConfig()
        self.validator = ConfigValidator()
        self.logger: Any = logger.bind(component="config_resolver")  # structlog.BoundLoggerBase

    def load_file_config(self, config_path: Union[str, Path]) -> PartialConfig:
        """
        Load the persisted configuration layer.

        A missing file yields an empty layer. A malformed file, or one with
        keys outside the schema, is reported as a warning and skipped.

        Args:
            config_path: JSON or YAML configuration file

        Returns:
            PartialConfig layer
        """
        path = Path(config_path)
        if not path.is_file():
            self.logger.debug("No config file found", path=str(path))
            return PartialConfig()

        try:
            text = path.read_text(encoding="utf-8")
            if path.suffix.lower() in (".yaml", ".yml"):
                raw = yaml.safe_load(text) or {}
            else:
                raw = json.loads(text)
            layer = PartialConfig.model_validate(raw)
        except (OSError, ValueError, yaml.YAMLError) as e:
            # json.JSONDecodeError and pydantic.ValidationError are ValueErrors
            self.logger.warning("Failed to load config file, ignoring it", path=str(path), error=str(e))
            return PartialConfig()

        self.logger.info("Loaded config file", path=str(path))
        return layer

    def extract_inline_config(self, markup: str) -> InlineDirectives:
        """
        Extract inline directives from a document.

        Recognizes a JSON block in ``<script id="h2i-config">`` and
        ``<meta name="h2i:KEY" content="VALUE">`` directives. Meta directives
        override keys set by the JSON block.

        Raises:
            ConfigValidationError: If directive values have the wrong types
        """
        raw: Dict[str, Any] = {}

        json_match = _INLINE_JSON_RE.search(markup)
        if json_match:
            try:
                block = json.loads(json_match.group(1).strip())
                if isinstance(block, dict):
                    raw.update(block)
                else:
                    self.logger.warning("Inline config block is not a JSON object, ignoring it")
            except json.JSONDecodeError as e:
                self.logger.warning("Failed to parse inline JSON config", error=str(e))

        for tag in _META_TAG_RE.findall(markup):
            name_match = _META_NAME_RE.search(tag)
            content_match = _META_CONTENT_RE.search(tag)
            if name_match and content_match:
                raw[name_match.group(1)] = coerce_directive_value(content_match.group(1))

        unknown = sorted(set(raw) - KNOWN_INLINE_KEYS)
        if unknown:
            self.logger.warning("Ignoring unknown inline directives", keys=unknown)

        try:
            return InlineDirectives.model_validate(raw)
        except ValidationError as e:
            raise ConfigValidationError(
                [
                    f"inline.{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                ]
            ) from e

    def merge(self, base: EffectiveConfig, layer: Optional[ConfigLayer]) -> EffectiveConfig:
        """
        Merge one layer over a configuration, key by key within each group.

        Args:
            base: Lower-precedence configuration
            layer: Higher-precedence layer; unset keys fall through

        Returns:
            New EffectiveConfig
        """
        if layer is None:
            return base
        if not isinstance(layer, PartialConfig):
            layer = layer.to_layer()

        merged = base.model_dump()
        for group in CONFIG_GROUPS:
            values = getattr(layer, group)
            if values is None:
                continue
            for field, value in values.model_dump(exclude_none=True).items():
                if group == "output" and field == "format":
                    value = normalize_format(value)
                merged[group][field] = value

        return EffectiveConfig.model_validate(merged)

    def resolve(
        self,
        file_config: Optional[ConfigLayer] = None,
        invocation_options: Optional[ConfigLayer] = None,
        inline_config: Optional[ConfigLayer] = None,
    ) -> EffectiveConfig:
        """
        Resolve the effective configuration.

        Precedence: inline > invocation > file > defaults.
        """
        config = self.defaults
        for layer in (file_config, invocation_options, inline_config):
            config = self.merge(config, layer)
        return config

    def validate(self, config: EffectiveConfig) -> List[str]:
        """Return every bound violation of a configuration."""
        return self.validator.validate(config.model_dump())

    def ensure_valid(self, config: EffectiveConfig) -> EffectiveConfig:
        """
        Validate a configuration.

        Raises:
            ConfigValidationError: With every violation found
        """
        errors = self.validate(config)
        if errors:
            raise ConfigValidationError(errors)
        return config

    @staticmethod
    def describe(config: EffectiveConfig, verbose: bool = False) -> List[str]:
        """Human-readable summary of an effective configuration."""
        viewport, output = config.viewport, config.output
        quality = f" (quality {output.quality}%)" if output.format != OutputFormat.PNG.value else ""
        lines = [
            f"Dimensions: {viewport.width}x{viewport.height} (scale {viewport.device_scale_factor}x)",
            f"Format: {output.format.upper()}{quality}",
            f"Page: {'full page' if output.full_page else 'viewport'}",
            f"Background: {output.background}",
            f"Concurrency: {config.processing.max_concurrent}",
        ]
        if verbose:
            lines.append(f"Page load timeout: {config.timeouts.page_load}ms")
            lines.append(f"Asset grace period: {config.timeouts.asset_load}ms")
        return lines
