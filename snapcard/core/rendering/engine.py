"""
Browser Engine
==============

Wrapper around one running Chromium process driven by Playwright.

The launcher is the only place that spawns a browser; the session manager calls
it and owns the resulting handle. Render jobs borrow the handle to open a
surface (browser context + page) and never keep it past the job.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from snapcard.config.logging import get_logger
from snapcard.config.settings import Settings, get_settings
from snapcard.core.errors import EngineLaunchError
from snapcard.models.schemas import OutputOptions

logger = get_logger(__name__)

# Chromium switches for a small memory footprint in constrained containers
LOW_MEMORY_ARGS: List[str] = [
    "--disable-gpu",
    "--disable-extensions",
    "--single-process",
    "--no-zygote",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]


class RenderSurface:
    """One browser context and page, scoped to a single render job."""

    def __init__(self, context: BrowserContext, page: Page):
        self.context = context
        self.page = page
        self.closed = False

    async def close(self) -> None:
        """Destroy the surface. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        await self.context.close()


class EngineHandle:
    """A launched browser engine."""

    def __init__(
        self,
        browser: Browser,
        playwright: Optional[Playwright] = None,
        executable_path: Optional[str] = None,
    ):
        self.browser = browser
        self.playwright = playwright
        self.executable_path = executable_path
        self.launched_at = datetime.now(timezone.utc)
        self.logger: Any = logger.bind(component="engine_handle")

    @property
    def is_connected(self) -> bool:
        return self.browser.is_connected()

    async def open_surface(self, options: OutputOptions) -> RenderSurface:
        """
        Open a rendering surface sized for the given output options.

        Args:
            options: Output geometry (viewport and device scale factor)

        Returns:
            RenderSurface owning a fresh context and page
        """
        context = await self.browser.new_context(
            viewport={"width": options.width, "height": options.height},
            device_scale_factor=options.pixel_scale,
        )
        try:
            page = await context.new_page()
        except Exception:
            await context.close()
            raise
        return RenderSurface(context, page)

    async def terminate(self) -> None:
        """Close the browser and stop the Playwright driver."""
        try:
            await self.browser.close()
        except Exception as e:
            self.logger.warning("Browser close failed", error=str(e))

        if self.playwright:
            try:
                await self.playwright.stop()
            except Exception as e:
                self.logger.warning("Playwright stop failed", error=str(e))

        self.logger.info("Engine terminated")


EngineLauncher = Callable[[], Awaitable[EngineHandle]]


class PlaywrightEngineLauncher:
    """Launches headless Chromium through Playwright."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="engine_launcher")

    def resolve_executable(self) -> Optional[str]:
        """
        Resolve the Chromium executable.

        Returns:
            Configured executable path, or None to use Playwright's bundled build

        Raises:
            EngineLaunchError: If a configured executable does not exist
        """
        configured = self.settings.browser_executable_path
        if configured is None:
            return None

        path = Path(configured).expanduser()
        if not path.is_file():
            raise EngineLaunchError(
                f"Browser executable not found: {path}", details={"executable_path": str(path)}
            )
        return str(path)

    def launch_args(self) -> List[str]:
        args = list(LOW_MEMORY_ARGS)
        args.extend(arg for arg in self.settings.browser_extra_args if arg not in args)
        return args

    async def __call__(self) -> EngineHandle:
        """
        Start Playwright and launch Chromium.

        Raises:
            EngineLaunchError: If the executable cannot be resolved or the browser fails to start
        """
        executable = self.resolve_executable()
        playwright: Optional[Playwright] = None

        try:
            playwright = await async_playwright().start()
            if executable is None and not Path(playwright.chromium.executable_path).exists():
                raise EngineLaunchError(
                    "Bundled Chromium is not installed; run `playwright install chromium`"
                )
            browser = await playwright.chromium.launch(
                executable_path=executable,
                headless=self.settings.browser_headless,
                args=self.launch_args(),
                timeout=self.settings.launch_timeout * 1000,
            )
        except BaseException as e:
            # Also reached when the caller's launch timeout cancels us
            if playwright:
                try:
                    await playwright.stop()
                except Exception as stop_error:
                    self.logger.warning("Playwright stop failed", error=str(stop_error))
            if isinstance(e, EngineLaunchError) or not isinstance(e, Exception):
                raise
            raise EngineLaunchError(f"Browser launch failed: {e}")

        self.logger.info(
            "Chromium launched",
            executable=executable or "bundled",
            version=browser.version,
        )
        return EngineHandle(browser, playwright=playwright, executable_path=executable)
