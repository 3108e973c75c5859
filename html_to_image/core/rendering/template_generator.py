"""
Template Generator
==================

Writes starter HTML documents for the presets, each carrying an inline
``h2i-config`` block so it converts with the intended dimensions. Documents
are rendered from Jinja2 templates shipped with the package.
"""

from typing import Any, Dict, List, Optional, Union
from pathlib import Path
import shutil

import jinja2

from html_to_image.config.logging import get_logger
from html_to_image.core.resolution.config_resolver import PRESETS, get_preset
from html_to_image.models.schemas import InvocationOptions, OutputFormat, Preset

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
SAMPLE_ASSETS = ("style.css", "script.js", "icon-check.svg")


class TemplateGenerator:
    """Generate starter documents from Jinja2 templates."""

    def __init__(self, lang: str = "en") -> None:
        self.lang = lang
        self.logger: Any = logger.bind(generator="jinja2")  # structlog.BoundLoggerBase
        self._setup_jinja2_environment()

    def _setup_jinja2_environment(self) -> None:
        """Setup Jinja2 template environment."""
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=jinja2.select_autoescape(["html", "xml"]),
            keep_trailing_newline=True,
        )

    def generate_templates(
        self,
        preset: str,
        count: int = 1,
        output_dir: Union[str, Path] = Path("html-files"),
        options: Optional[InvocationOptions] = None,
    ) -> List[Path]:
        """
        Write ``count`` documents named ``{preset}-NN.html``.

        Args:
            preset: Preset name
            count: Number of documents
            output_dir: Destination folder; an ``assets`` folder is added next to them
            options: Explicit dimensions and output options

        Returns:
            Paths of the written documents

        Raises:
            ConfigValidationError: If the preset is unknown
            ValueError: If count is below 1
        """
        if count < 1:
            raise ValueError(f"count must be at least 1, got {count}")

        spec = get_preset(preset)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        self.write_sample_assets(output_dir / "assets")

        generated: List[Path] = []
        for number in range(1, count + 1):
            path = output_dir / f"{spec.name}-{number:02d}.html"
            context = self._context(spec, options, number, count)
            path.write_text(self.env.get_template(f"{spec.name}.html").render(**context), encoding="utf-8")
            generated.append(path)
            self.logger.info("Template created", file=path.name)

        return generated

    def create_empty_html(
        self,
        folder: Union[str, Path],
        name: str,
        options: Optional[InvocationOptions] = None,
    ) -> Optional[Path]:
        """
        Write one empty document ready for pasted content.

        Returns:
            The new document, or None when a file with that name already exists
        """
        folder = Path(folder)
        folder.mkdir(parents=True, exist_ok=True)
        if not name.lower().endswith((".html", ".htm")):
            name += ".html"

        path = folder / name
        if path.exists():
            self.logger.warning("File already exists, not overwriting", file=str(path))
            return None

        spec = self.determine_preset(options)
        path.write_text(self._render_empty(spec, options, 1, 1), encoding="utf-8")
        self.logger.info("Empty document created", file=str(path), preset=spec.name)
        return path

    def create_multiple_empty_html(
        self,
        folder: Union[str, Path],
        count: int,
        options: Optional[InvocationOptions] = None,
    ) -> List[Path]:
        """Write ``slide-NN.html`` documents, skipping names that already exist."""
        folder = Path(folder)
        folder.mkdir(parents=True, exist_ok=True)
        spec = self.determine_preset(options)

        created: List[Path] = []
        for number in range(1, count + 1):
            path = folder / f"slide-{number:02d}.html"
            if path.exists():
                self.logger.warning("File already exists, skipping", file=path.name)
                continue
            path.write_text(self._render_empty(spec, options, number, count), encoding="utf-8")
            created.append(path)

        self.logger.info("Empty documents created", count=len(created), preset=spec.name)
        return created

    @staticmethod
    def determine_preset(options: Optional[InvocationOptions]) -> Preset:
        """Preset named by the options, else the one matching their dimensions."""
        if options and options.preset:
            return get_preset(options.preset)
        if options and options.width and options.height:
            for preset in PRESETS.values():
                if (preset.width, preset.height) == (options.width, options.height):
                    return preset
        return PRESETS["generic"]

    @staticmethod
    def write_sample_assets(assets_dir: Path) -> None:
        """Copy the sample assets, keeping files that already exist."""
        assets_dir.mkdir(parents=True, exist_ok=True)
        for name in SAMPLE_ASSETS:
            target = assets_dir / name
            if not target.exists():
                shutil.copyfile(TEMPLATE_DIR / "assets" / name, target)

    def _render_empty(
        self, spec: Preset, options: Optional[InvocationOptions], number: int, total: int
    ) -> str:
        context = self._context(spec, options, number, total)
        context["title"] = f"Slide {number}"
        return self.env.get_template("empty.html").render(**context)

    def _context(
        self, spec: Preset, options: Optional[InvocationOptions], number: int, total: int
    ) -> Dict[str, Any]:
        options = options or InvocationOptions()
        width = options.width or spec.width
        height = options.height or spec.height
        background = options.background or spec.background

        return {
            "lang": self.lang,
            "title": f"{spec.label} {number}",
            "width": width,
            "height": height,
            "background": background,
            "slide_number": number,
            "total_slides": total,
            "inline_config": {
                "format": options.format or OutputFormat.PNG.value,
                "quality": options.quality or 90,
                "width": width,
                "height": height,
                "background": background,
                "deviceScaleFactor": options.scale or 2,
                "fullPage": True if options.full_page is None else options.full_page,
            },
        }
