"""
AI Document Generator
=====================

Generates slide documents from a free-text prompt with a text-generation
model, splits the response into individual HTML documents and repairs them
so each one is a complete document with an inline conversion config.
"""

from typing import Any, Dict, List, Optional, Tuple, Union
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
import json
import re

from google import genai
from google.genai import types

from html_to_image.config.logging import get_logger
from html_to_image.config.settings import get_settings
from html_to_image.core.resolution.config_resolver import INLINE_CONFIG_ID, PRESETS, get_preset
from html_to_image.models.schemas import GeneratedDocument, SamplingOptions

logger = get_logger(__name__)

HTML_DELIMITER = "---HTML---"

_DELIMITER_RE = re.compile(r"^\s*" + re.escape(HTML_DELIMITER) + r"\s*$", re.MULTILINE)
_CODE_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n(.*?)\n?```\s*$", re.DOTALL)
_DOCTYPE_RE = re.compile(r"<!DOCTYPE\s+html", re.IGNORECASE)
_BODY_RE = re.compile(r"<body[^>]*>", re.IGNORECASE)
_HTML_OPEN_RE = re.compile(r"<html[^>]*>", re.IGNORECASE)
_HEAD_CLOSE_RE = re.compile(r"</head>", re.IGNORECASE)

PROMPT_TEMPLATE = """Generate {count} standalone HTML pages for {label} ({width}x{height}px).

MANDATORY REQUIREMENTS:
- Every page must be a complete document: <!DOCTYPE html>, <html>, <head>, <body>
- NO external dependencies (CSS, JS or images)
- Use inline styles or an internal <style> element only
- Use inline SVG for icons and graphics
- Fonts: use safe fallbacks (system-ui, -apple-system, sans-serif)

INLINE CONFIGURATION (required in every page):
<script id="h2i-config" type="application/json">
{config}
</script>

SUGGESTED STRUCTURE:
- Main container with fixed dimensions {width}px x {height}px
- Clean, professional content
- No watermarks or unnecessary elements

THEME / REQUEST:
{prompt}

OUTPUT FORMAT:
Separate EACH page with a line containing only:
{delimiter}

Do NOT include explanations outside the HTML blocks."""


class AIGenerationError(Exception):
    """Exception raised when document generation fails."""

    pass


class TextGenerator(ABC):
    """Text-generation backend."""

    @abstractmethod
    async def generate(self, prompt: str, sampling: Optional[SamplingOptions] = None) -> str:
        """Generate text for a prompt."""
        pass


class GeminiTextGenerator(TextGenerator):
    """Google Gemini backend using the official SDK."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        settings = get_settings()
        api_key = api_key or settings.gemini_api_key
        if not api_key:
            raise AIGenerationError("GEMINI_API_KEY not found. Set it in the environment or .env file")

        self.model = model or settings.gemini_model
        self.client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(
                timeout=(timeout or settings.ai_timeout) * 1000,  # milliseconds
            ),
        )
        self.logger: Any = logger.bind(component="gemini", model=self.model)  # structlog.BoundLoggerBase

    async def generate(self, prompt: str, sampling: Optional[SamplingOptions] = None) -> str:
        sampling = sampling or SamplingOptions()
        config = types.GenerateContentConfig(
            temperature=sampling.temperature,
            max_output_tokens=sampling.max_output_tokens,
        )

        self.logger.debug("Sending generation request", prompt_chars=len(prompt))
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            self.logger.warning("Generation request failed", error=str(e), error_type=type(e).__name__)
            raise AIGenerationError(f"Gemini API error: {e}") from e

        return response.text or ""


class AIDocumentGenerator:
    """Prompt a text generator for slides and save them as documents."""

    def __init__(self, generator: TextGenerator):
        self.generator = generator
        self.settings = get_settings()
        self.logger: Any = logger.bind(component="ai_generator")  # structlog.BoundLoggerBase

    @staticmethod
    def default_inline_config(preset: str = "instagram") -> Dict[str, Any]:
        spec = PRESETS.get(preset, PRESETS["instagram"])
        return {
            "format": "png",
            "width": spec.width,
            "height": spec.height,
            "quality": 95,
            "background": "transparent",
            "suffix": spec.suffix,
        }

    def build_prompt(self, prompt: str, count: int = 6, preset: str = "instagram") -> str:
        """
        Build the generation prompt.

        Raises:
            AIGenerationError: If the prompt is empty
            ConfigValidationError: If the preset is unknown
        """
        if not prompt or not prompt.strip():
            raise AIGenerationError("A prompt is required")

        spec = get_preset(preset)
        return PROMPT_TEMPLATE.format(
            count=count,
            label=spec.label,
            width=spec.width,
            height=spec.height,
            config=json.dumps(self.default_inline_config(preset), indent=2),
            prompt=prompt.strip(),
            delimiter=HTML_DELIMITER,
        )

    def parse_response(
        self, text: str, count: int, preset: str = "instagram"
    ) -> List[GeneratedDocument]:
        """
        Split a response on delimiter lines and repair each document.

        Args:
            text: Raw model response
            count: Maximum number of documents to keep
            preset: Preset whose dimensions go into a missing inline config

        Returns:
            Documents named ``ai-slide-NN.html``

        Raises:
            AIGenerationError: If the response is empty or holds no documents
        """
        if not text or not text.strip():
            raise AIGenerationError("Empty response from text generator")

        parts = [part.strip() for part in _DELIMITER_RE.split(text)]
        parts = [part for part in parts if part]
        if not parts:
            raise AIGenerationError(
                f"No HTML blocks found. Check the {HTML_DELIMITER} delimiter"
            )

        documents = []
        for index, part in enumerate(parts[:count], start=1):
            filename = f"ai-slide-{index:02d}.html"
            markup, repairs = self.repair_document(part, preset)
            if "inline_config" in repairs:
                self.logger.warning("Document had no inline config, added default", file=filename)
            documents.append(
                GeneratedDocument(filename=filename, markup=markup, metadata={"repairs": repairs})
            )

        self.logger.info("Documents generated", count=len(documents))
        return documents

    def repair_document(self, markup: str, preset: str = "instagram") -> Tuple[str, List[str]]:
        """Make a generated fragment a complete document with an inline config."""
        repairs: List[str] = []

        fenced = _CODE_FENCE_RE.match(markup)
        if fenced:
            markup = fenced.group(1).strip()
            repairs.append("code_fence")

        if not _BODY_RE.search(markup):
            markup = f"<html>\n<head>\n</head>\n<body>\n{markup}\n</body>\n</html>"
            repairs.append("body")

        if not _DOCTYPE_RE.search(markup):
            markup = f"<!DOCTYPE html>\n{markup}"
            repairs.append("doctype")

        if f'id="{INLINE_CONFIG_ID}"' not in markup and f"id='{INLINE_CONFIG_ID}'" not in markup:
            block = (
                f'<script id="{INLINE_CONFIG_ID}" type="application/json">\n'
                f"{json.dumps(self.default_inline_config(preset), indent=2)}\n"
                "</script>"
            )
            if _HEAD_CLOSE_RE.search(markup):
                markup = _HEAD_CLOSE_RE.sub(lambda _: f"  {block}\n</head>", markup, count=1)
            elif _HTML_OPEN_RE.search(markup):
                markup = _HTML_OPEN_RE.sub(
                    lambda m: f"{m.group(0)}\n<head>\n  {block}\n</head>", markup, count=1
                )
            else:
                markup = f"{block}\n{markup}"
            repairs.append("inline_config")

        return markup, repairs

    def write_to_work_folder(
        self, documents: List[GeneratedDocument], base_dir: Optional[Union[str, Path]] = None
    ) -> Path:
        """
        Save documents into a new timestamped folder.

        Args:
            documents: Generated documents
            base_dir: Parent folder; ``<default input>/ai`` when None

        Returns:
            The folder the documents were written to
        """
        base = Path(base_dir) if base_dir else self.settings.default_input / "ai"
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        output_dir = base / timestamp
        output_dir.mkdir(parents=True, exist_ok=True)

        for document in documents:
            (output_dir / document.filename).write_text(document.markup, encoding="utf-8")
            self.logger.debug("Saved document", file=document.filename)

        self.logger.info("Documents saved", folder=str(output_dir), count=len(documents))
        return output_dir

    async def generate_documents(
        self,
        prompt: str,
        count: int = 6,
        preset: str = "instagram",
        sampling: Optional[SamplingOptions] = None,
    ) -> List[GeneratedDocument]:
        full_prompt = self.build_prompt(prompt, count, preset)
        self.logger.info("Generating documents", count=count, preset=preset)
        text = await self.generator.generate(full_prompt, sampling)
        return self.parse_response(text, count, preset)

    async def generate_and_save(
        self,
        prompt: str,
        count: int = 6,
        preset: str = "instagram",
        base_dir: Optional[Union[str, Path]] = None,
        sampling: Optional[SamplingOptions] = None,
    ) -> Path:
        """Generate documents and write them to a new work folder."""
        documents = await self.generate_documents(prompt, count, preset, sampling)
        return self.write_to_work_folder(documents, base_dir)
