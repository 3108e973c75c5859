"""
Command Line Interface
======================

``html-to-image [path] [options]`` converts a document, an archive or a
folder of documents into images. It can also write starter documents and
generate documents from a prompt before converting them.
"""

from typing import List, Optional
from pathlib import Path
import argparse
import asyncio
import sys

from html_to_image import __version__
from html_to_image.config.logging import get_logger, setup_logging
from html_to_image.config.settings import get_settings
from html_to_image.core.ai.generator import (
    AIDocumentGenerator,
    AIGenerationError,
    GeminiTextGenerator,
)
from html_to_image.core.ingest.archive import ArchiveError
from html_to_image.core.pipeline import ConversionOrchestrator, InputError
from html_to_image.core.queue.report import ReportAggregator
from html_to_image.core.rendering.renderer import RenderError
from html_to_image.core.rendering.template_generator import TemplateGenerator
from html_to_image.core.resolution.config_resolver import (
    PRESETS,
    ConfigValidationError,
    apply_preset,
)
from html_to_image.models.schemas import InvocationOptions

logger = get_logger(__name__)

FATAL_ERRORS = (
    ConfigValidationError,
    InputError,
    ArchiveError,
    AIGenerationError,
    RenderError,
    ValueError,
)

EPILOG = """examples:
  html-to-image                                  convert html-files/work
  html-to-image slides --preset instagram        1080x1440 PNG images
  html-to-image page.html -f jpeg -q 80          single document as JPEG
  html-to-image bundle.zip --out-dir images      documents inside an archive
  html-to-image --generate 3 --preset ppt        write three starter slides
  html-to-image --ai --prompt "Product launch"   generate slides, then convert
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="html-to-image",
        description="Convert HTML documents to images (PNG, JPEG, WebP)",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="HTML document, .zip/.rar archive or folder (default: html-files/work)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    output = parser.add_argument_group("output")
    output.add_argument("-f", "--format", help="Output format: png, jpeg (jpg) or webp")
    output.add_argument("-q", "--quality", type=int, help="Quality for jpeg/webp (1-100)")
    output.add_argument("-w", "--width", type=int, help="Viewport width in pixels")
    output.add_argument("-H", "--height", type=int, help="Viewport height in pixels")
    output.add_argument("-s", "--scale", type=float, help="Device scale factor")
    output.add_argument(
        "--fullpage",
        dest="full_page",
        action="store_true",
        default=None,
        help="Capture the full page (default)",
    )
    output.add_argument(
        "--no-fullpage", dest="full_page", action="store_false", help="Capture the viewport only"
    )
    output.add_argument("--preset", choices=sorted(PRESETS), help="Predefined dimensions")
    output.add_argument("--out-dir", type=Path, help="Folder for the images")
    output.add_argument("--suffix", help="Suffix appended to image names")
    output.add_argument("--wait-ms", type=int, help="Extra wait after load in ms")
    output.add_argument("--background", help="Background: transparent, #ffffff, rgb(...)")

    processing = parser.add_argument_group("processing")
    processing.add_argument("--concurrency", type=int, help="Parallel conversions (1-10)")
    processing.add_argument("--config", type=Path, help="Config file (JSON or YAML)")
    processing.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    generation = parser.add_argument_group("document generation")
    generation.add_argument("--generate", type=int, metavar="N", help="Write N preset templates")
    generation.add_argument("--create-html", metavar="NAME", help="Write an empty document")
    generation.add_argument("--create-multiple", type=int, metavar="N", help="Write N empty slides")
    generation.add_argument("--ai", action="store_true", help="Generate documents with Gemini")
    generation.add_argument("--prompt", help="Theme or request for --ai")
    generation.add_argument("--slides", type=int, default=6, help="Documents to generate with --ai")
    generation.add_argument("--model", help="Gemini model for --ai")

    return parser


def options_from_args(args: argparse.Namespace) -> InvocationOptions:
    return InvocationOptions(
        format=args.format,
        quality=args.quality,
        width=args.width,
        height=args.height,
        scale=args.scale,
        full_page=args.full_page,
        background=args.background,
        concurrency=args.concurrency,
        wait_ms=args.wait_ms,
        output_dir=args.out_dir,
        suffix=args.suffix,
        preset=args.preset,
    )


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    folder = Path(args.path) if args.path else settings.default_input
    options = options_from_args(args)

    if args.create_html:
        created = TemplateGenerator().create_empty_html(folder, args.create_html, options)
        if created:
            print(f"Created {created}")
        return 0

    if args.create_multiple:
        for path in TemplateGenerator().create_multiple_empty_html(folder, args.create_multiple, options):
            print(f"Created {path}")
        return 0

    if args.generate:
        preset = args.preset or "generic"
        for path in TemplateGenerator().generate_templates(preset, args.generate, folder, apply_preset(options)):
            print(f"Created {path}")
        print(f"\nTo convert them run: html-to-image {folder}")
        return 0

    if args.ai:
        if not args.prompt:
            raise AIGenerationError("--prompt is required with --ai")
        generator = AIDocumentGenerator(GeminiTextGenerator(model=args.model))
        folder = await generator.generate_and_save(
            args.prompt,
            count=args.slides,
            preset=args.preset or "instagram",
            base_dir=folder / "ai",
        )
        print(f"Generated documents in {folder}")

    summary = await ConversionOrchestrator(settings).convert(folder, options, config_file=args.config)
    print(ReportAggregator.format_report(summary))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point; returns the process exit status."""
    args = build_parser().parse_args(argv)
    setup_logging("DEBUG" if args.verbose else None)

    try:
        return asyncio.run(run(args))
    except FATAL_ERRORS as e:
        logger.error("Conversion aborted", error=str(e), error_type=type(e).__name__)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
