"""
Health Routes
=============

Read-only operator introspection: engine state, memory usage and uptime.
Never launches or touches the engine.
"""

import time

import psutil
from fastapi import APIRouter, Depends, Request

from snapcard.api.dependencies import get_render_service
from snapcard.core.rendering.service import RenderService
from snapcard.models.schemas import EngineState, HealthStatus, MemoryUsage

router = APIRouter(tags=["Health"])

_MB = 1024 * 1024


def collect_memory_usage() -> MemoryUsage:
    """Resident memory of this process and its child engine processes."""
    process = psutil.Process()
    process_rss = process.memory_info().rss

    engine_rss = 0
    for child in process.children(recursive=True):
        try:
            engine_rss += child.memory_info().rss
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue

    return MemoryUsage(
        process_rss_mb=round(process_rss / _MB, 2),
        engine_rss_mb=round(engine_rss / _MB, 2),
        total_rss_mb=round((process_rss + engine_rss) / _MB, 2),
        system_percent=psutil.virtual_memory().percent,
    )


@router.get("/health", response_model=HealthStatus)
async def health_check(
    request: Request, service: RenderService = Depends(get_render_service)
) -> HealthStatus:
    """Current engine state, memory usage and uptime."""
    engine = service.session_manager.status()
    started_at = getattr(request.app.state, "started_at", time.monotonic())

    return HealthStatus(
        status="degraded" if engine.state is EngineState.FAILED else "healthy",
        version=service.settings.app_version,
        uptime_seconds=round(time.monotonic() - started_at, 3),
        engine=engine,
        memory=collect_memory_usage(),
        active_jobs=service.pipeline.active_jobs,
    )
