"""
Unit Tests for Render Service
=============================
"""

import pytest

from snapcard.core.errors import TemplateNotFound, ValidationError
from snapcard.core.rendering.markup_builder import MarkupBuilder
from snapcard.core.rendering.render_pipeline import RenderPipeline
from snapcard.core.rendering.service import RenderService
from snapcard.core.rendering.session_manager import SessionManager
from snapcard.models.schemas import RenderRequest
from tests.utils.mocks import FakeLauncher


class TestRenderService:

    @pytest.mark.asyncio
    async def test_text_card_takes_fast_path(self, render_service, fake_launcher):
        result = await render_service.render(
            {"templateId": "text", "content": {"headline": "Hello"}}
        )

        page = fake_launcher.pages[0]
        assert page.set_content_calls[0]["wait_until"] == "domcontentloaded"
        assert "Hello" in page.content
        assert result.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_image_card_takes_network_path(self, render_service, fake_launcher):
        await render_service.render(
            RenderRequest(
                template_id="image",
                content={"headline": "x", "background_image_url": "https://a.com/bg.jpg"},
            )
        )

        assert fake_launcher.pages[0].set_content_calls[0]["wait_until"] == "networkidle"

    @pytest.mark.asyncio
    async def test_invalid_request_never_launches(self, render_service, fake_launcher):
        with pytest.raises(ValidationError):
            await render_service.render({"content": {"headline": "x"}})
        assert fake_launcher.launch_count == 0

    @pytest.mark.asyncio
    async def test_missing_template_never_launches(self, render_service, fake_launcher):
        with pytest.raises(TemplateNotFound):
            await render_service.render({"template_id": "nope", "content": {}})
        assert fake_launcher.launch_count == 0

    def test_exposes_session_manager(self, test_settings):
        manager = SessionManager(test_settings, launcher=FakeLauncher())
        service = RenderService(RenderPipeline(manager, test_settings), MarkupBuilder(test_settings))
        assert service.session_manager is manager
        assert service.pipeline.active_jobs == 0
