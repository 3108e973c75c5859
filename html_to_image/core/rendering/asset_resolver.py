"""
Asset Resolver
==============

Rewrites relative asset references in a document into addresses the
renderer can fetch. Files are served read-only by a local aiohttp server
bound to an ephemeral port; documents whose assets live in a sibling
folder are handled by configurable fallback search paths.
"""

from typing import Any, List, Optional, Sequence
from pathlib import Path
from urllib.parse import quote
import re

from aiohttp import web

from html_to_image.config.logging import get_logger

logger = get_logger(__name__)

ASSET_EXTENSIONS = (
    "css",
    "js",
    "png",
    "jpg",
    "jpeg",
    "gif",
    "svg",
    "webp",
    "woff",
    "woff2",
    "ttf",
    "otf",
)

SKIPPED_PREFIXES = ("http:", "https:", "//", "data:", "file:")

STATIC_PREFIX = "/files"

_ASSET_RE = re.compile(
    r"(?P<prefix>(?:\b(?:href|src)\s*=\s*[\"']?)|(?:url\(\s*[\"']?))"
    r"(?P<path>[^\"'\s()<>]+?\.(?:" + "|".join(ASSET_EXTENSIONS) + r"))"
    r"(?=[\"'\s)?#>])",
    re.IGNORECASE,
)


class AssetServerError(Exception):
    """Exception raised when the asset server cannot be started."""

    pass


class AssetServer:
    """Read-only static file server on a free local port."""

    def __init__(self, root: Path, host: str = "127.0.0.1"):
        self.root = Path(root).resolve()
        self.host = host
        self.base_url: Optional[str] = None
        self._runner: Optional[web.AppRunner] = None
        self.logger: Any = logger.bind(component="asset_server")  # structlog.BoundLoggerBase

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> str:
        """
        Start serving the root directory.

        Returns:
            Base URL under which files are reachable by their root-relative path
        """
        if self.base_url is not None:
            return self.base_url

        app = web.Application()
        app.router.add_static(STATIC_PREFIX, self.root, show_index=False, follow_symlinks=False)

        runner = web.AppRunner(app, access_log=None)
        try:
            await runner.setup()
            site = web.TCPSite(runner, self.host, 0)
            await site.start()
        except OSError as e:
            await runner.cleanup()
            raise AssetServerError(f"Asset server failed to start: {e}")

        port = runner.addresses[0][1]
        self._runner = runner
        self.base_url = f"http://{self.host}:{port}{STATIC_PREFIX}"
        self.logger.info("Asset server started", base_url=self.base_url, root=str(self.root))
        return self.base_url

    async def stop(self) -> None:
        """Stop the server; safe to call when not running."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self.base_url = None
            self.logger.info("Asset server stopped")


class AssetResolver:
    """Resolve relative asset references against the document and search paths."""

    def __init__(
        self,
        root: Path,
        host: str = "127.0.0.1",
        work_dir_name: str = "work",
        work_fallback: bool = True,
        search_paths: Optional[Sequence[Path]] = None,
    ):
        self.server = AssetServer(root, host)
        self.work_dir_name = work_dir_name
        self.work_fallback = work_fallback
        self.search_paths: List[Path] = [Path(p) for p in (search_paths or [])]
        self.logger: Any = logger.bind(component="asset_resolver")  # structlog.BoundLoggerBase

    @property
    def root(self) -> Path:
        return self.server.root

    @property
    def base_url(self) -> Optional[str]:
        return self.server.base_url

    async def start_server(self) -> str:
        return await self.server.start()

    async def stop_server(self) -> None:
        await self.server.stop()

    def rewrite(self, markup: str, document_path: Path) -> str:
        """
        Rewrite relative asset references in a document.

        Args:
            markup: Document markup
            document_path: Path of the document the references are relative to

        Returns:
            Markup with every resolvable reference rewritten; unresolved
            references are left untouched
        """
        document_dir = Path(document_path).resolve().parent

        def replace(match: "re.Match[str]") -> str:
            reference = match.group("path")
            if self._is_skipped(reference):
                return match.group(0)

            resolved = self.resolve_reference(reference, document_dir)
            if resolved is None:
                self.logger.warning(
                    "Asset not found", asset=reference, document=str(document_path)
                )
                return match.group(0)

            return match.group("prefix") + self.address_for(resolved)

        return _ASSET_RE.sub(replace, markup)

    def resolve_reference(self, reference: str, document_dir: Path) -> Optional[Path]:
        """Find the file a relative reference points to, or None."""
        for candidate in self._candidates(reference, document_dir):
            if candidate.is_file():
                return candidate.resolve()
        return None

    def address_for(self, path: Path) -> str:
        """Address under which the renderer can fetch a file."""
        if self.base_url is not None:
            try:
                relative = path.relative_to(self.root)
            except ValueError:
                self.logger.debug("Asset outside server root, using file URI", asset=str(path))
            else:
                return f"{self.base_url}/{quote(relative.as_posix())}"
        return path.as_uri()

    def _is_skipped(self, reference: str) -> bool:
        lowered = reference.lower()
        if lowered.startswith(SKIPPED_PREFIXES):
            return True
        return self.base_url is not None and reference.startswith(self.base_url)

    def _candidates(self, reference: str, document_dir: Path) -> List[Path]:
        relative = reference.split("?", 1)[0].split("#", 1)[0]
        candidates = [document_dir / relative]

        stripped = relative[2:] if relative.startswith("./") else relative
        if (
            self.work_fallback
            and document_dir.name == self.work_dir_name
            and stripped.startswith("assets/")
        ):
            candidates.append(document_dir.parent / stripped)

        candidates.extend(search_path / stripped for search_path in self.search_paths)
        return candidates
