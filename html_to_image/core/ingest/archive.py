"""
Archive Ingestor
================

Extracts compressed archives into ephemeral working directories and
discovers the HTML documents inside them. Zip archives are read in-process;
rar archives need the ``unrar`` tool on the host.
"""

from typing import Any, List, Optional, Union
from pathlib import Path
import os
import shutil
import subprocess
import tempfile
import zipfile

from html_to_image.config.logging import get_logger
from html_to_image.models.schemas import ArchiveExtraction

logger = get_logger(__name__)

SUPPORTED_ARCHIVES = (".zip", ".rar")
HTML_EXTENSIONS = (".html", ".htm")


class ArchiveError(Exception):
    """Exception raised when an archive cannot be extracted."""

    pass


class ArchiveToolNotFoundError(ArchiveError):
    """Exception raised when the external extraction tool is missing."""

    pass


class ArchiveIngestor:
    """Archive detection, extraction and HTML discovery."""

    def __init__(self, unrar_command: str = "unrar"):
        self.unrar_command = unrar_command
        self.logger: Any = logger.bind(component="archive_ingestor")  # structlog.BoundLoggerBase

    @staticmethod
    def is_archive(path: Union[str, Path]) -> bool:
        return Path(path).suffix.lower() in SUPPORTED_ARCHIVES

    def extract(self, archive_path: Union[str, Path], dest_dir: Union[str, Path]) -> Path:
        """
        Extract an archive.

        Args:
            archive_path: Archive file
            dest_dir: Destination directory, created if missing

        Returns:
            The destination directory

        Raises:
            ArchiveError: Unsupported format or extraction failure
            ArchiveToolNotFoundError: If rar extraction is requested without unrar
        """
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)
        suffix = archive_path.suffix.lower()

        if suffix == ".zip":
            return self.extract_zip(archive_path, dest_dir)
        if suffix == ".rar":
            return self.extract_rar(archive_path, dest_dir)
        raise ArchiveError(f"Unsupported archive format: {suffix or archive_path.name}")

    def extract_zip(self, archive_path: Path, dest_dir: Path) -> Path:
        self.logger.info("Extracting zip archive", archive=archive_path.name)
        dest_dir.mkdir(parents=True, exist_ok=True)
        root = dest_dir.resolve()

        try:
            with zipfile.ZipFile(archive_path) as archive:
                members = archive.infolist()
                for member in members:
                    target = (root / member.filename).resolve()
                    if target != root and root not in target.parents:
                        raise ArchiveError(
                            f"Archive member escapes extraction directory: {member.filename}"
                        )
                archive.extractall(root)
        except zipfile.BadZipFile as e:
            raise ArchiveError(f"Invalid zip archive {archive_path.name}: {e}") from e
        except (OSError, NotImplementedError, RuntimeError) as e:
            raise ArchiveError(f"Failed to extract {archive_path.name}: {e}") from e

        self.logger.info("Extraction complete", archive=archive_path.name, files=len(members))
        return dest_dir

    def extract_rar(self, archive_path: Path, dest_dir: Path) -> Path:
        executable = shutil.which(self.unrar_command)
        if executable is None:
            raise ArchiveToolNotFoundError(
                f"{self.unrar_command} not found. Install unrar to extract RAR archives."
            )

        self.logger.info("Extracting rar archive", archive=archive_path.name)
        dest_dir.mkdir(parents=True, exist_ok=True)

        # Trailing separator makes unrar treat the destination as a directory
        completed = subprocess.run(
            [executable, "x", "-o+", "-y", str(archive_path), str(dest_dir) + os.sep],
            capture_output=True,
            text=True,
        )
        if completed.returncode != 0:
            detail = (completed.stderr or completed.stdout).strip()
            raise ArchiveError(f"unrar failed for {archive_path.name}: {detail}")

        return dest_dir

    @staticmethod
    def find_html(root_dir: Union[str, Path]) -> List[Path]:
        """Recursively find HTML documents, sorted by path."""
        root = Path(root_dir)
        return sorted(
            path
            for path in root.rglob("*")
            if path.is_file() and path.suffix.lower() in HTML_EXTENSIONS
        )

    def process_archive(
        self, archive_path: Union[str, Path], work_root: Optional[Path] = None
    ) -> ArchiveExtraction:
        """
        Extract an archive into a fresh temporary directory.

        Args:
            archive_path: Archive file
            work_root: Parent of the temporary directory; system temp when None

        Returns:
            ArchiveExtraction owning the temporary directory

        Raises:
            ArchiveError: On any failure; the temporary directory is removed first
        """
        archive_path = Path(archive_path)
        if work_root is not None:
            Path(work_root).mkdir(parents=True, exist_ok=True)
        temp_dir = Path(tempfile.mkdtemp(prefix="h2i-", dir=work_root))

        try:
            extract_path = self.extract(archive_path, temp_dir)
            html_files = self.find_html(extract_path)
        except ArchiveError:
            self.cleanup(temp_dir)
            raise
        except Exception as e:
            self.cleanup(temp_dir)
            raise ArchiveError(f"Failed to extract {archive_path.name}: {e}") from e

        self.logger.info(
            "Archive processed", archive=archive_path.name, documents=len(html_files)
        )
        return ArchiveExtraction(
            archive_path=archive_path, extract_path=extract_path, html_files=html_files
        )

    def cleanup(self, extract_path: Union[str, Path]) -> None:
        """Remove an extraction directory; missing directories are ignored."""
        path = Path(extract_path)
        if path.exists():
            shutil.rmtree(path, ignore_errors=True)
            self.logger.debug("Removed extraction directory", path=str(path))
