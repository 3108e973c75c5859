"""
Unit Tests for Command Line Interface
=====================================

Tests for argument parsing, command dispatch and exit codes. The
orchestrator and the Gemini backend are mocked.
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from html_to_image.cli import build_parser, main, options_from_args
from html_to_image.core.ingest.archive import ArchiveError
from html_to_image.core.pipeline import InputError
from html_to_image.core.resolution.config_resolver import ConfigValidationError
from html_to_image.models.schemas import BatchSummary

from tests.utils.helpers import make_document
from tests.utils.mocks import FakeTextGenerator


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep the CLI from reconfiguring logging during tests."""
    with patch("html_to_image.cli.setup_logging"):
        yield


@pytest.fixture
def mock_orchestrator():
    """Patched orchestrator class returning a one-document summary."""
    with patch("html_to_image.cli.ConversionOrchestrator") as mock_class:
        mock_class.return_value.convert = AsyncMock(
            return_value=BatchSummary(successful=1, failed=0, success_rate=100.0)
        )
        yield mock_class


class TestParser:
    """Test argument parsing."""

    def test_defaults(self):
        """Test that unset options stay unset."""
        args = build_parser().parse_args([])

        assert args.path is None
        assert args.full_page is None
        assert args.slides == 6
        assert options_from_args(args).model_dump(exclude_none=True) == {}

    def test_options_mapped(self):
        """Test conversion of arguments into invocation options."""
        args = build_parser().parse_args(
            [
                "docs",
                "-f", "jpg",
                "-q", "80",
                "-w", "1080",
                "-H", "1350",
                "-s", "1.5",
                "--no-fullpage",
                "--out-dir", "images",
                "--suffix", "-x",
                "--wait-ms", "500",
                "--concurrency", "4",
                "--background", "#fff",
            ]
        )
        options = options_from_args(args)

        assert args.path == "docs"
        assert options.format == "jpg"
        assert (options.width, options.height, options.scale) == (1080, 1350, 1.5)
        assert options.full_page is False
        assert options.output_dir == Path("images")
        assert options.concurrency == 4
        assert options.wait_ms == 500

    def test_unknown_preset_rejected(self):
        """Test preset choices."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--preset", "poster"])


class TestConvertCommand:
    """Test the default conversion command."""

    def test_convert_prints_report(self, mock_orchestrator, tmp_path, capsys):
        """Test a successful conversion."""
        exit_code = main([str(tmp_path), "--preset", "instagram", "--config", "cfg.yaml"])

        assert exit_code == 0
        folder, options = mock_orchestrator.return_value.convert.call_args[0]
        assert folder == tmp_path
        assert options.preset == "instagram"
        assert mock_orchestrator.return_value.convert.call_args.kwargs["config_file"] == Path("cfg.yaml")
        assert "Conversion report" in capsys.readouterr().out

    def test_default_input_folder(self, mock_orchestrator, test_settings):
        """Test that the default input folder is used without a path."""
        assert main([]) == 0
        assert mock_orchestrator.return_value.convert.call_args[0][0] == test_settings.default_input

    def test_per_item_failures_exit_zero(self, mock_orchestrator):
        """Test that isolated failures do not fail the process."""
        mock_orchestrator.return_value.convert.return_value = BatchSummary(
            successful=0, failed=2, success_rate=0.0
        )
        assert main(["docs"]) == 0

    @pytest.mark.parametrize(
        "error",
        [
            InputError("Path not found: nope"),
            ConfigValidationError(["viewport.width: min value is 1"]),
            ArchiveError("Failed to extract packed.zip: That compression method is not supported"),
        ],
    )
    def test_fatal_errors_exit_one(self, mock_orchestrator, error, capsys):
        """Test that fatal errors are reported with exit code 1."""
        mock_orchestrator.return_value.convert.side_effect = error

        assert main(["nope"]) == 1
        assert capsys.readouterr().err.startswith("Error: ")


class TestGenerationCommands:
    """Test document generation commands."""

    def test_generate_templates(self, tmp_path, mock_orchestrator, capsys):
        """Test --generate writes preset templates without converting."""
        assert main([str(tmp_path), "--generate", "2", "--preset", "ppt"]) == 0

        assert (tmp_path / "ppt-01.html").is_file()
        assert (tmp_path / "ppt-02.html").is_file()
        assert "To convert them run" in capsys.readouterr().out
        mock_orchestrator.assert_not_called()

    def test_generate_defaults_to_generic(self, tmp_path, mock_orchestrator):
        """Test the default preset for --generate."""
        assert main([str(tmp_path), "--generate", "1"]) == 0
        assert (tmp_path / "generic-01.html").is_file()

    def test_create_html(self, tmp_path, mock_orchestrator):
        """Test --create-html."""
        assert main([str(tmp_path), "--create-html", "cover"]) == 0
        assert (tmp_path / "cover.html").is_file()
        mock_orchestrator.assert_not_called()

    def test_create_multiple(self, tmp_path, mock_orchestrator):
        """Test --create-multiple."""
        assert main([str(tmp_path), "--create-multiple", "3"]) == 0
        assert sorted(p.name for p in tmp_path.glob("*.html")) == [
            "slide-01.html",
            "slide-02.html",
            "slide-03.html",
        ]

    def test_ai_requires_prompt(self, tmp_path, mock_orchestrator, capsys):
        """Test that --ai without --prompt fails."""
        assert main([str(tmp_path), "--ai"]) == 1
        assert "--prompt is required" in capsys.readouterr().err
        mock_orchestrator.assert_not_called()

    def test_ai_generates_then_converts(self, tmp_path, mock_orchestrator):
        """Test that generated documents are converted."""
        backend = FakeTextGenerator(make_document("Generated"))
        with patch("html_to_image.cli.GeminiTextGenerator", MagicMock(return_value=backend)) as mock_gemini:
            exit_code = main([str(tmp_path), "--ai", "--prompt", "launch", "--slides", "1", "--model", "m"])

        assert exit_code == 0
        mock_gemini.assert_called_once_with(model="m")
        folder = mock_orchestrator.return_value.convert.call_args[0][0]
        assert folder.parent == tmp_path / "ai"
        assert (folder / "ai-slide-01.html").is_file()
