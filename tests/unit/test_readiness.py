"""
Unit Tests for Readiness Waits
==============================
"""

import asyncio

import pytest

from snapcard.core.rendering import readiness
from snapcard.models.schemas import StageStatus
from tests.utils.mocks import FakePage


async def _sleep_then(value, delay):
    await asyncio.sleep(delay)
    return value


async def _fail():
    raise RuntimeError("boom")


class TestBoundedWait:

    @pytest.mark.asyncio
    async def test_ok(self):
        outcome = await readiness.bounded_wait("fonts", _sleep_then(True, 0), 1.0)
        assert outcome.stage == "fonts"
        assert outcome.status is StageStatus.OK
        assert outcome.ok

    @pytest.mark.asyncio
    async def test_timeout_is_recorded(self):
        outcome = await readiness.bounded_wait("fonts", _sleep_then(True, 1.0), 0.01)
        assert outcome.status is StageStatus.TIMEOUT
        assert not outcome.ok
        assert "0.01" in outcome.detail

    @pytest.mark.asyncio
    async def test_error_is_recorded(self):
        outcome = await readiness.bounded_wait("image[0]", _fail(), 1.0)
        assert outcome.status is StageStatus.ERROR
        assert outcome.detail == "boom"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        task = asyncio.create_task(readiness.bounded_wait("fonts", _sleep_then(True, 10), 20))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_wait_all_tolerant_keeps_order(self):
        outcomes = await readiness.wait_all_tolerant(
            [("a", _sleep_then(1, 0.02)), ("b", _fail()), ("c", _sleep_then(1, 5))], 0.1
        )
        assert [o.stage for o in outcomes] == ["a", "b", "c"]
        assert [o.status for o in outcomes] == [
            StageStatus.OK,
            StageStatus.ERROR,
            StageStatus.TIMEOUT,
        ]


class TestFontGate:

    @pytest.mark.asyncio
    async def test_fonts_ready(self):
        outcome = await readiness.font_gate(FakePage(), 0.5)
        assert outcome.ok

    @pytest.mark.asyncio
    async def test_slow_fonts_time_out(self):
        outcome = await readiness.font_gate(FakePage(font_delay=1.0), 0.05)
        assert outcome.stage == "fonts"
        assert outcome.status is StageStatus.TIMEOUT


class TestAssetGate:

    @pytest.mark.asyncio
    async def test_no_assets(self):
        outcomes = await readiness.asset_gate(FakePage(), ["body"], 0.1)
        assert outcomes == []

    @pytest.mark.asyncio
    async def test_one_outcome_per_asset(self):
        page = FakePage(images=2, background_urls=["https://example.com/bg.jpg"])

        outcomes = await readiness.asset_gate(page, ["body"], 0.1)

        assert [o.stage for o in outcomes] == ["image[0]", "image[1]", "background[0]"]
        assert all(o.ok for o in outcomes)
        assert "https://example.com/bg.jpg" in page.evaluated

    @pytest.mark.asyncio
    async def test_failing_and_hanging_assets_do_not_raise(self):
        page = FakePage(
            images=3,
            failing_assets=["image[1]"],
            hanging_assets=["image[2]"],
        )

        outcomes = await readiness.asset_gate(page, ["body"], 0.05)

        statuses = {o.stage: o.status for o in outcomes}
        assert statuses == {
            "image[0]": StageStatus.OK,
            "image[1]": StageStatus.ERROR,
            "image[2]": StageStatus.TIMEOUT,
        }

    @pytest.mark.asyncio
    async def test_discovery_failure_is_one_outcome(self):
        page = FakePage(discovery_error=RuntimeError("context destroyed"))

        outcomes = await readiness.asset_gate(page, ["body"], 0.1)

        assert len(outcomes) == 1
        assert outcomes[0].stage == "assets"
        assert outcomes[0].status is StageStatus.ERROR
