"""
Test Helpers
============

Helper functions for common testing operations.
"""

import asyncio
import io
import time
from html.parser import HTMLParser
from typing import Callable, List

from PIL import Image


async def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = 5.0,
    interval: float = 0.01,
    error_message: str = "Condition not met within timeout"
) -> None:
    """Wait for a condition to become true."""
    start_time = time.time()

    while time.time() - start_time < timeout:
        if condition():
            return
        await asyncio.sleep(interval)

    raise TimeoutError(error_message)


class _TextCollector(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.chunks: List[str] = []
        self.tags: List[str] = []

    def handle_starttag(self, tag, attrs):  # type: ignore[no-untyped-def]
        self.tags.append(tag)

    def handle_data(self, data: str) -> None:
        if data.strip():
            self.chunks.append(data.strip())


def visible_text(markup: str) -> List[str]:
    """Text nodes of a document, entity references decoded."""
    collector = _TextCollector()
    collector.feed(markup)
    return collector.chunks


def start_tags(markup: str) -> List[str]:
    """Element names in document order."""
    collector = _TextCollector()
    collector.feed(markup)
    return collector.tags


def image_format(data: bytes) -> str:
    """Pillow's format name for encoded image bytes."""
    with Image.open(io.BytesIO(data)) as image:
        return image.format or ""
