"""
Test Mocks
===========

Fake browser objects for driving the engine handle, session manager and render
pipeline without a real Chromium.
"""

import asyncio
import io
from typing import Any, Callable, Dict, Iterable, List, Optional

from PIL import Image

from snapcard.core.errors import EngineLaunchError
from snapcard.core.rendering import readiness
from snapcard.core.rendering.engine import EngineHandle


def make_image_bytes(width: int = 8, height: int = 8, image_format: str = "PNG") -> bytes:
    """Encode a small solid image with Pillow."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (5, 5, 5)).save(buffer, format=image_format)
    return buffer.getvalue()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePage:
    """Stand-in for a Playwright page."""

    def __init__(
        self,
        screenshot_bytes: Optional[bytes] = None,
        set_content_error: Optional[BaseException] = None,
        load_delay: float = 0.0,
        font_delay: float = 0.0,
        font_error: Optional[BaseException] = None,
        images: int = 0,
        background_urls: Iterable[str] = (),
        failing_assets: Iterable[str] = (),
        hanging_assets: Iterable[str] = (),
        discovery_error: Optional[BaseException] = None,
        screenshot_error: Optional[BaseException] = None,
    ):
        self.screenshot_bytes = screenshot_bytes if screenshot_bytes is not None else make_image_bytes()
        self.set_content_error = set_content_error
        self.load_delay = load_delay
        self.font_delay = font_delay
        self.font_error = font_error
        self.images = images
        self.background_urls = list(background_urls)
        self.failing_assets = set(failing_assets)
        self.hanging_assets = set(hanging_assets)
        self.discovery_error = discovery_error
        self.screenshot_error = screenshot_error

        self.content: Optional[str] = None
        self.set_content_calls: List[Dict[str, Any]] = []
        self.evaluated: List[str] = []
        self.screenshot_calls: List[Dict[str, Any]] = []

    async def set_content(self, html: str, wait_until: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.set_content_calls.append({"wait_until": wait_until, "timeout": timeout})
        if self.load_delay:
            await asyncio.sleep(self.load_delay)
        self.content = html
        if self.set_content_error is not None:
            raise self.set_content_error

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        if expression == readiness.FONTS_READY_JS:
            self.evaluated.append("fonts")
            if self.font_delay:
                await asyncio.sleep(self.font_delay)
            if self.font_error is not None:
                raise self.font_error
            return "loaded"

        if expression == readiness.IMAGE_COUNT_JS:
            self.evaluated.append("image_count")
            if self.discovery_error is not None:
                raise self.discovery_error
            return self.images

        if expression == readiness.BACKGROUND_URLS_JS:
            self.evaluated.append("background_urls")
            return list(self.background_urls)

        if expression == readiness.WAIT_IMAGE_JS:
            return await self._wait_asset(f"image[{arg}]")

        if expression == readiness.WAIT_BACKGROUND_JS:
            return await self._wait_asset(arg)

        raise AssertionError(f"Unexpected evaluate expression: {expression[:40]}")

    async def _wait_asset(self, key: str) -> bool:
        self.evaluated.append(key)
        if key in self.hanging_assets:
            await asyncio.sleep(3600)
        if key in self.failing_assets:
            raise RuntimeError(f"{key} failed to load")
        return True

    async def screenshot(self, **kwargs: Any) -> bytes:
        self.screenshot_calls.append(kwargs)
        if self.screenshot_error is not None:
            raise self.screenshot_error
        return self.screenshot_bytes


class FakeContext:
    """Stand-in for a Playwright browser context."""

    def __init__(self, page: FakePage, options: Dict[str, Any], new_page_error: Optional[BaseException] = None):
        self.page = page
        self.options = options
        self.new_page_error = new_page_error
        self.close_count = 0

    async def new_page(self) -> FakePage:
        if self.new_page_error is not None:
            raise self.new_page_error
        return self.page

    async def close(self) -> None:
        self.close_count += 1


class FakeBrowser:
    """Stand-in for a Playwright browser."""

    version = "fake-chromium"

    def __init__(
        self,
        page_factory: Callable[[], FakePage],
        new_page_error: Optional[BaseException] = None,
    ):
        self.page_factory = page_factory
        self.new_page_error = new_page_error
        self.connected = True
        self.close_count = 0
        self.contexts: List[FakeContext] = []

    def is_connected(self) -> bool:
        return self.connected

    async def new_context(self, **kwargs: Any) -> FakeContext:
        context = FakeContext(self.page_factory(), kwargs, self.new_page_error)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.close_count += 1
        self.connected = False


class FakeLauncher:
    """Engine launcher producing EngineHandles around FakeBrowsers."""

    def __init__(
        self,
        page_factory: Optional[Callable[[], FakePage]] = None,
        delay: float = 0.0,
        fail_times: int = 0,
        error: Optional[BaseException] = None,
        new_page_error: Optional[BaseException] = None,
    ):
        self.page_factory = page_factory or FakePage
        self.delay = delay
        self.fail_times = fail_times
        self.error = error
        self.new_page_error = new_page_error
        self.launch_count = 0
        self.handles: List[EngineHandle] = []

    @property
    def browsers(self) -> List[FakeBrowser]:
        return [handle.browser for handle in self.handles]  # type: ignore[misc]

    @property
    def contexts(self) -> List[FakeContext]:
        return [context for browser in self.browsers for context in browser.contexts]

    @property
    def pages(self) -> List[FakePage]:
        return [context.page for context in self.contexts]

    async def __call__(self) -> EngineHandle:
        self.launch_count += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.error or EngineLaunchError("Browser launch failed: chromium exited")
        browser = FakeBrowser(self.page_factory, self.new_page_error)
        handle = EngineHandle(browser)  # type: ignore[arg-type]
        self.handles.append(handle)
        return handle
