"""
Integration Tests for End-to-End Pipeline
=========================================

Integration tests for the conversion workflow from input path to written
images, using a fake renderer in place of the browser and the real asset
server.
"""

import re

import aiohttp
import pytest

from html_to_image.core.pipeline import ConversionOrchestrator
from html_to_image.core.rendering.render_capture import INVALID_HTML_MESSAGE
from html_to_image.core.rendering.template_generator import TemplateGenerator
from html_to_image.models.schemas import InvocationOptions

from tests.utils.assertions import assert_images_exist, assert_summary_counts
from tests.utils.helpers import make_document, make_zip
from tests.utils.mocks import FAKE_JPEG, FakeRenderer


class TestDirectoryConversion:
    """Test conversion of document folders."""

    @pytest.mark.asyncio
    async def test_sequential_directory(self, test_settings, html_dir, fake_renderer, renderer_factory):
        """Test two documents converted one at a time next to their sources."""
        orchestrator = ConversionOrchestrator(test_settings, renderer_factory)

        summary = await orchestrator.convert(html_dir, InvocationOptions(concurrency=1, wait_ms=0))

        assert_summary_counts(summary, successful=2, failed=0)
        assert summary.success_rate == 100.0
        assert_images_exist([html_dir / "a.png", html_dir / "b.png"])
        assert fake_renderer.max_live_sessions == 1
        assert all(session.closed for session in fake_renderer.sessions)
        assert fake_renderer.close_calls == 1

    @pytest.mark.asyncio
    async def test_work_folder_outputs(self, test_settings, work_dir, renderer_factory):
        """Test that documents in the work folder produce images in the output folder."""
        (work_dir / "slide.html").write_text(make_document(), encoding="utf-8")
        orchestrator = ConversionOrchestrator(test_settings, renderer_factory)

        summary = await orchestrator.convert(work_dir, InvocationOptions(format="jpeg", wait_ms=0))

        assert summary.successful == 1
        output = work_dir.parent / "output" / "slide.jpeg"
        assert_images_exist([output])
        assert output.read_bytes() == FAKE_JPEG
        assert not (work_dir / "slide.jpeg").exists()

    @pytest.mark.asyncio
    async def test_generated_templates_convert(self, test_settings, tmp_path, renderer_factory, fake_renderer):
        """Test that starter templates convert with their embedded dimensions."""
        TemplateGenerator().generate_templates("instagram", count=2, output_dir=tmp_path)
        orchestrator = ConversionOrchestrator(test_settings, renderer_factory)

        summary = await orchestrator.convert(tmp_path, InvocationOptions(wait_ms=0))

        assert summary.successful == 2
        viewport = fake_renderer.sessions[0].viewport
        assert (viewport.width, viewport.height) == (1080, 1440)


class TestArchiveConversion:
    """Test conversion of archives."""

    @pytest.mark.asyncio
    async def test_archive_with_invalid_member(self, test_settings, tmp_path, monkeypatch, renderer_factory):
        """Test that one invalid document fails in isolation."""
        monkeypatch.chdir(tmp_path)
        archive = make_zip(
            tmp_path / "bundle.zip",
            {"good.html": make_document("Good"), "bad.html": "<div>no document</div>"},
        )
        orchestrator = ConversionOrchestrator(test_settings, renderer_factory)

        summary = await orchestrator.convert(archive, InvocationOptions(wait_ms=0))

        assert_summary_counts(summary, successful=1, failed=1)
        assert summary.failures[0][0].name == "bad.html"
        assert summary.failures[0][1] == INVALID_HTML_MESSAGE
        assert_images_exist([tmp_path / "output" / "good.png"])
        assert not (tmp_path / "output" / "bad.png").exists()


class TestAssetServing:
    """Test that rewritten asset references are reachable."""

    @pytest.mark.asyncio
    async def test_assets_served_during_render(self, test_settings, work_dir):
        """Test that the work folder's assets are fetched from the asset server."""
        markup = make_document(
            head='<link rel="stylesheet" href="./assets/style.css">',
            body='<img src="assets/logo.png">',
        )
        (work_dir / "slide.html").write_text(markup, encoding="utf-8")
        fetched = {}

        class FetchingRenderer(FakeRenderer):
            async def open_session(self, viewport):
                session = await super().open_session(viewport)
                original_load = session.load

                async def load(content, timeout_ms):
                    await original_load(content, timeout_ms)
                    async with aiohttp.ClientSession() as client:
                        for url in re.findall(r'(?:src|href)="(http[^"]+)"', content):
                            async with client.get(url) as response:
                                fetched[url.rsplit("/", 1)[-1]] = response.status

                session.load = load
                return session

        orchestrator = ConversionOrchestrator(test_settings, FetchingRenderer)
        summary = await orchestrator.convert(work_dir, InvocationOptions(wait_ms=0))

        assert summary.successful == 1
        assert fetched == {"style.css": 200, "logo.png": 200}

    @pytest.mark.asyncio
    async def test_missing_asset_still_converts(self, test_settings, html_dir, fake_renderer, renderer_factory):
        """Test that a missing asset does not fail the document."""
        (html_dir / "a.html").write_text(
            make_document(body='<img src="./assets/missing.png">'), encoding="utf-8"
        )
        orchestrator = ConversionOrchestrator(test_settings, renderer_factory)

        summary = await orchestrator.convert(html_dir / "a.html", InvocationOptions(wait_ms=0))

        assert summary.successful == 1
        assert_images_exist([html_dir / "a.png"])
        assert 'src="./assets/missing.png"' in fake_renderer.sessions[0].loaded_markup
