"""
Render Pipeline
===============

Drive one render job through the readiness protocol and capture a raster image:

1. size ceiling and admission check
2. borrow the engine from the session manager
3. open a surface sized for the output
4. load markup (fast path or network path)
5. font gate
6. asset gate (network path only)
7. capture and verify the image
8. close the surface and release the borrow, always

The whole job is bounded by ``job_timeout``.
"""

import asyncio
import io
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional, Tuple

from PIL import Image
from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError

from snapcard.config.logging import get_logger
from snapcard.config.settings import Settings, get_settings
from snapcard.core.errors import (
    CapacityExceeded,
    CaptureError,
    InternalError,
    LoadTimeout,
    RenderError,
)
from snapcard.core.rendering import readiness
from snapcard.core.rendering.engine import EngineHandle, RenderSurface
from snapcard.core.rendering.markup_builder import check_markup_size
from snapcard.core.rendering.session_manager import SessionManager
from snapcard.models.schemas import OutputOptions, RenderResult, StageOutcome, StageStatus

logger = get_logger(__name__)

_PIL_FORMATS = {"png": "PNG", "jpeg": "JPEG"}


def _summarize(error: BaseException, limit: int = 300) -> str:
    """Error text short enough to log; Playwright errors can carry a long call log."""
    text = str(error).strip()
    first_line = text.splitlines()[0] if text else error.__class__.__name__
    return first_line[:limit]


class RenderPipeline:
    """Renders markup to raster bytes using the session manager's engine."""

    def __init__(self, session_manager: SessionManager, settings: Optional[Settings] = None):
        self.session_manager = session_manager
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="render_pipeline")  # structlog.BoundLoggerBase
        self._active_jobs = 0

    @property
    def active_jobs(self) -> int:
        return self._active_jobs

    async def render(
        self, markup: str, options: OutputOptions, requires_network: bool = True
    ) -> RenderResult:
        """
        Render markup to an image.

        Args:
            markup: HTML document
            options: Output geometry and encoding
            requires_network: Use the network load path and asset gate

        Returns:
            RenderResult; ``degraded`` is set if a soft stage did not complete

        Raises:
            ValidationError: Markup over the size ceiling (no engine interaction)
            CapacityExceeded: Too many jobs in flight
            EngineLaunchError: Engine could not be started
            LoadTimeout: Fast-path load or overall job timed out
            CaptureError: Screenshot failed
            InternalError: Anything else
        """
        size = check_markup_size(markup, self.settings.max_markup_bytes)
        options = options.with_defaults(self.settings)

        if self._active_jobs >= self.settings.max_concurrent_jobs:
            raise CapacityExceeded(
                "Too many render jobs in progress, retry later",
                details={"max_concurrent_jobs": self.settings.max_concurrent_jobs},
            )

        job_logger = self.logger.bind(job_id=uuid.uuid4().hex[:12])
        job_logger.info(
            "Render job started",
            markup_bytes=size,
            width=options.width,
            height=options.height,
            pixel_scale=options.pixel_scale,
            requires_network=requires_network,
        )

        self._active_jobs += 1
        started = time.perf_counter()
        try:
            image_bytes, stages = await asyncio.wait_for(
                self._run_job(markup, options, requires_network, job_logger),
                timeout=self.settings.job_timeout,
            )
        except asyncio.TimeoutError:
            job_logger.error("Render job timed out", job_timeout=self.settings.job_timeout)
            raise LoadTimeout(
                f"Render job exceeded {self.settings.job_timeout}s",
                details={"stage": "job", "timeout": self.settings.job_timeout},
            )
        except RenderError as e:
            job_logger.warning("Render job failed", error_code=e.error_code, error=e.message)
            raise
        except Exception as e:
            job_logger.error("Unclassified render failure", error=_summarize(e), exc_info=True)
            raise InternalError(f"Render failed: {_summarize(e)}")
        finally:
            self._active_jobs -= 1

        duration_ms = int((time.perf_counter() - started) * 1000)
        result = RenderResult(
            image_bytes=image_bytes,
            content_type=options.content_type,
            width=options.width,
            height=options.height,
            pixel_scale=options.pixel_scale,
            duration_ms=duration_ms,
            degraded=any(not stage.ok for stage in stages),
            stages=stages,
        )
        job_logger.info(
            "Render job completed",
            duration_ms=duration_ms,
            file_size=result.file_size,
            degraded=result.degraded,
        )
        return result

    async def _run_job(
        self, markup: str, options: OutputOptions, requires_network: bool, job_logger: Any
    ) -> Tuple[bytes, List[StageOutcome]]:
        async with self.session_manager.borrow() as handle:
            async with self._open_surface(handle, options, job_logger) as surface:
                page = surface.page
                stages = [await self._load(page, markup, requires_network, job_logger)]

                stages.append(await readiness.font_gate(page, self.settings.font_ready_timeout))

                if requires_network:
                    stages.extend(
                        await readiness.asset_gate(
                            page, self.settings.background_selectors, self.settings.asset_timeout
                        )
                    )

                for stage in stages:
                    if not stage.ok:
                        job_logger.warning(
                            "Readiness stage incomplete, continuing",
                            stage=stage.stage,
                            status=stage.status.value,
                            detail=stage.detail,
                        )

                image_bytes = await self._capture(page, options)
                return image_bytes, stages

    @asynccontextmanager
    async def _open_surface(
        self, handle: EngineHandle, options: OutputOptions, job_logger: Any
    ) -> AsyncGenerator[RenderSurface, None]:
        """Open a surface and close it exactly once, whatever happens inside."""
        surface = await handle.open_surface(options)
        try:
            yield surface
        finally:
            try:
                await surface.close()
            except Exception as e:
                job_logger.warning("Surface close failed", error=_summarize(e))

    async def _load(
        self, page: Page, markup: str, requires_network: bool, job_logger: Any
    ) -> StageOutcome:
        """Load markup under the load-wait policy for its resource profile."""
        started = time.perf_counter()

        if not requires_network:
            timeout = self.settings.dom_load_timeout
            try:
                await page.set_content(markup, wait_until="domcontentloaded", timeout=timeout * 1000)
            except PlaywrightTimeoutError:
                raise LoadTimeout(
                    f"Document not parsed within {timeout}s",
                    details={"stage": "load", "timeout": timeout},
                )
            return StageOutcome(
                stage="load",
                status=StageStatus.OK,
                elapsed_ms=int((time.perf_counter() - started) * 1000),
            )

        timeout = self.settings.network_load_timeout
        try:
            await page.set_content(markup, wait_until="networkidle", timeout=timeout * 1000)
        except PlaywrightTimeoutError:
            job_logger.warning("Network did not settle, capturing anyway", timeout=timeout)
            return StageOutcome(
                stage="load",
                status=StageStatus.TIMEOUT,
                detail=f"network not idle after {timeout}s",
                elapsed_ms=int((time.perf_counter() - started) * 1000),
            )
        return StageOutcome(
            stage="load",
            status=StageStatus.OK,
            elapsed_ms=int((time.perf_counter() - started) * 1000),
        )

    async def _capture(self, page: Page, options: OutputOptions) -> bytes:
        """Screenshot the viewport and check the bytes decode as the requested format."""
        screenshot_options: dict = {
            "type": options.image_format,
            "clip": {"x": 0, "y": 0, "width": options.width, "height": options.height},
        }
        if options.image_format == "jpeg" and options.quality is not None:
            screenshot_options["quality"] = options.quality

        try:
            image_bytes = await page.screenshot(**screenshot_options)
        except Exception as e:
            raise CaptureError(f"Screenshot failed: {_summarize(e)}")

        self._verify_image(image_bytes, options)
        return image_bytes

    def _verify_image(self, image_bytes: bytes, options: OutputOptions) -> None:
        expected = _PIL_FORMATS[options.image_format]
        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                image_format = image.format
                pixel_size = image.size
                image.verify()
        except Exception as e:
            raise CaptureError(f"Captured image is not decodable: {_summarize(e)}")

        if image_format != expected:
            raise CaptureError(
                f"Captured image is {image_format}, expected {expected}",
                details={"format": image_format},
            )

        self.logger.debug(
            "Captured image verified",
            format=image_format,
            pixel_width=pixel_size[0],
            pixel_height=pixel_size[1],
            file_size=len(image_bytes),
        )
