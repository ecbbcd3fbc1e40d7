"""
Test Configuration
==================

Pytest configuration with fixtures for all test types.
Provides test settings, a fake browser engine and an application client.
"""

import os

os.environ.setdefault("SNAPCARD_ENVIRONMENT", "testing")

from pathlib import Path
from typing import Any, AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from snapcard.api.main import create_app
from snapcard.config.settings import Settings
from snapcard.core.rendering.markup_builder import MarkupBuilder
from snapcard.core.rendering.render_pipeline import RenderPipeline
from snapcard.core.rendering.service import RenderService
from snapcard.core.rendering.session_manager import SessionManager
from tests.utils.mocks import FakeClock, FakeLauncher


def make_test_settings(**overrides: Any) -> Settings:
    """Settings with short timeouts and no warm start."""
    values: dict = {
        "environment": "testing",
        "warm_start": False,
        "launch_timeout": 2.0,
        "idle_timeout": 300.0,
        "idle_check_interval": 60.0,
        "dom_load_timeout": 1.0,
        "network_load_timeout": 1.0,
        "font_ready_timeout": 0.2,
        "asset_timeout": 0.2,
        "job_timeout": 5.0,
        "date_format": "%B %d, %Y",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Test settings with an empty template directory."""
    template_dir = tmp_path / "templates"
    template_dir.mkdir()
    return make_test_settings(template_dir=template_dir)


@pytest.fixture
def template_dir(test_settings: Settings) -> Path:
    return test_settings.template_dir


@pytest.fixture
def fake_launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def session_manager(
    test_settings: Settings, fake_launcher: FakeLauncher, fake_clock: FakeClock
) -> AsyncGenerator[SessionManager, None]:
    """Session manager on the fake engine, shut down after the test."""
    manager = SessionManager(test_settings, launcher=fake_launcher, clock=fake_clock)
    yield manager
    await manager.shutdown()


@pytest.fixture
def pipeline(session_manager: SessionManager, test_settings: Settings) -> RenderPipeline:
    return RenderPipeline(session_manager, test_settings)


@pytest.fixture
def render_service(pipeline: RenderPipeline, test_settings: Settings) -> RenderService:
    return RenderService(pipeline, MarkupBuilder(test_settings), test_settings)


@pytest.fixture
def client(
    test_settings: Settings, fake_launcher: FakeLauncher
) -> Generator[TestClient, None, None]:
    """Application client; the lifespan runs for the duration of the test."""
    app = create_app(test_settings, launcher=fake_launcher)
    with TestClient(app) as test_client:
        yield test_client
