"""
Readiness Protocol
==================

Bounded waits on asynchronous document signals (font loading, image loading).

Each wait resolves to a StageOutcome instead of raising, so a slow or broken
asset can only degrade a render, never fail it. Cancellation still propagates.
"""

import asyncio
import time
from typing import Any, Awaitable, Iterable, List, Tuple

from playwright.async_api import Page

from snapcard.models.schemas import StageOutcome, StageStatus

FONTS_READY_JS = "() => document.fonts.ready.then(() => document.fonts.status)"

IMAGE_COUNT_JS = "() => document.images.length"

WAIT_IMAGE_JS = """(index) => new Promise((resolve, reject) => {
  const img = document.images[index];
  if (!img) { resolve(true); return; }
  const settle = () => img.naturalWidth > 0
    ? resolve(true)
    : reject(new Error('image failed to load: ' + (img.currentSrc || img.src)));
  if (img.complete) { settle(); return; }
  img.addEventListener('load', settle, { once: true });
  img.addEventListener('error', settle, { once: true });
})"""

BACKGROUND_URLS_JS = r"""(selectors) => {
  const urls = [];
  for (const selector of selectors) {
    for (const el of document.querySelectorAll(selector)) {
      const bg = getComputedStyle(el).backgroundImage;
      if (!bg || bg === 'none') continue;
      for (const match of bg.matchAll(/url\(["']?(.*?)["']?\)/g)) {
        if (match[1] && !urls.includes(match[1])) urls.push(match[1]);
      }
    }
  }
  return urls;
}"""

WAIT_BACKGROUND_JS = """(url) => new Promise((resolve, reject) => {
  const img = new Image();
  img.onload = () => resolve(true);
  img.onerror = () => reject(new Error('background image failed to load: ' + url));
  img.src = url;
})"""


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


async def bounded_wait(stage: str, awaitable: Awaitable[Any], timeout: float) -> StageOutcome:
    """
    Wait for ``awaitable`` for at most ``timeout`` seconds.

    Args:
        stage: Name recorded on the outcome
        awaitable: Signal to wait for
        timeout: Upper bound in seconds

    Returns:
        StageOutcome with status ok, timeout or error
    """
    started = time.perf_counter()
    try:
        await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        return StageOutcome(
            stage=stage,
            status=StageStatus.TIMEOUT,
            detail=f"not ready after {timeout}s",
            elapsed_ms=_elapsed_ms(started),
        )
    except Exception as e:
        return StageOutcome(
            stage=stage,
            status=StageStatus.ERROR,
            detail=str(e)[:300],
            elapsed_ms=_elapsed_ms(started),
        )
    return StageOutcome(stage=stage, status=StageStatus.OK, elapsed_ms=_elapsed_ms(started))


async def wait_all_tolerant(
    waits: Iterable[Tuple[str, Awaitable[Any]]], timeout: float
) -> List[StageOutcome]:
    """Wait for every signal concurrently, each individually bounded; failures are recorded."""
    return list(await asyncio.gather(*(bounded_wait(stage, aw, timeout) for stage, aw in waits)))


async def font_gate(page: Page, timeout: float) -> StageOutcome:
    """Race ``document.fonts.ready`` against ``timeout``."""
    return await bounded_wait("fonts", page.evaluate(FONTS_READY_JS), timeout)


async def asset_gate(page: Page, background_selectors: List[str], timeout: float) -> List[StageOutcome]:
    """
    Wait for every ``<img>`` and every background image of the selected elements
    to finish loading or fail.

    Args:
        page: Page holding the loaded document
        background_selectors: CSS selectors of background-layer elements
        timeout: Per-asset bound in seconds

    Returns:
        One outcome per asset, or a single ``assets`` outcome if discovery failed
    """
    started = time.perf_counter()
    try:
        image_count, background_urls = await asyncio.wait_for(
            asyncio.gather(
                page.evaluate(IMAGE_COUNT_JS),
                page.evaluate(BACKGROUND_URLS_JS, background_selectors),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        return [
            StageOutcome(
                stage="assets",
                status=StageStatus.TIMEOUT,
                detail=f"asset discovery not finished after {timeout}s",
                elapsed_ms=_elapsed_ms(started),
            )
        ]
    except Exception as e:
        return [
            StageOutcome(
                stage="assets",
                status=StageStatus.ERROR,
                detail=str(e)[:300],
                elapsed_ms=_elapsed_ms(started),
            )
        ]

    waits: List[Tuple[str, Awaitable[Any]]] = [
        (f"image[{index}]", page.evaluate(WAIT_IMAGE_JS, index))
        for index in range(int(image_count or 0))
    ]
    waits.extend(
        (f"background[{index}]", page.evaluate(WAIT_BACKGROUND_JS, url))
        for index, url in enumerate(background_urls or [])
    )
    if not waits:
        return []
    return await wait_all_tolerant(waits, timeout)
