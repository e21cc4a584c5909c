"""Tests for src/posting/cost_guard.py - per-job LLM budget.

Run after changes to: src/posting/cost_guard.py
"""

import asyncio

import pytest

from src.models import UsageRecord
from src.posting import CostGuard


def usage(cost: float, board_id: str = "alpha") -> UsageRecord:
    return UsageRecord(provider="stub", model="m", cost_usd=cost, job_id="job", board_id=board_id)


class TestReserve:
    @pytest.mark.asyncio
    async def test_reserve_within_ceiling(self):
        guard = CostGuard(ceiling_usd=0.05)
        assert await guard.reserve("job", 0.02) is True
        assert await guard.remaining("job") == pytest.approx(0.03)

    @pytest.mark.asyncio
    async def test_reserve_denied_when_estimate_does_not_fit(self):
        guard = CostGuard(ceiling_usd=0.05)
        await guard.record("job", usage(0.04))
        assert await guard.reserve("job", 0.02) is False

    @pytest.mark.asyncio
    async def test_zero_ceiling_denies_everything(self):
        guard = CostGuard(ceiling_usd=0.0)
        assert await guard.reserve("job", 0.0) is False
        assert await guard.is_exhausted("job") is True

    @pytest.mark.asyncio
    async def test_jobs_have_separate_budgets(self):
        guard = CostGuard(ceiling_usd=0.01)
        assert await guard.reserve("job", 0.01) is True
        assert await guard.reserve("other", 0.01) is True

    @pytest.mark.asyncio
    async def test_run_ceiling_applies_across_jobs(self):
        guard = CostGuard(ceiling_usd=1.0, run_ceiling_usd=0.015)
        assert await guard.reserve("job", 0.01) is True
        assert await guard.reserve("other", 0.01) is False

    def test_negative_ceiling_rejected(self):
        with pytest.raises(ValueError):
            CostGuard(ceiling_usd=-1)


class TestRecord:
    @pytest.mark.asyncio
    async def test_record_releases_reservation(self):
        guard = CostGuard(ceiling_usd=0.05)
        await guard.reserve("job", 0.03)
        await guard.record("job", usage(0.01), reserved=0.03)

        assert await guard.total("job") == pytest.approx(0.01)
        assert await guard.remaining("job") == pytest.approx(0.04)

    @pytest.mark.asyncio
    async def test_failed_call_without_usage_only_releases(self):
        guard = CostGuard(ceiling_usd=0.05)
        await guard.reserve("job", 0.03)
        await guard.record("job", None, reserved=0.03)

        assert await guard.total("job") == 0.0
        assert await guard.remaining("job") == pytest.approx(0.05)
        assert await guard.usage_records("job") == []

    @pytest.mark.asyncio
    async def test_overshoot_is_recorded_and_blocks_further_calls(self, caplog):
        guard = CostGuard(ceiling_usd=0.05)
        await guard.reserve("job", 0.04)
        await guard.record("job", usage(0.06), reserved=0.04)

        assert await guard.total("job") == pytest.approx(0.06)
        assert await guard.is_exhausted("job") is True
        assert await guard.reserve("job", 0.0) is False
        assert "exceeded ceiling" in caplog.text

    @pytest.mark.asyncio
    async def test_total_per_board(self):
        guard = CostGuard(ceiling_usd=1.0)
        await guard.record("job", usage(0.01, "alpha"))
        await guard.record("job", usage(0.02, "beta"))
        await guard.record("job", usage(0.03, "alpha"))

        assert await guard.total("job", "alpha") == pytest.approx(0.04)
        assert await guard.total("job", "beta") == pytest.approx(0.02)
        assert await guard.total("job") == pytest.approx(0.06)
        assert len(await guard.usage_records("job")) == 3
        assert guard.run_total == pytest.approx(0.06)


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_reservations_never_exceed_ceiling(self):
        """Ten workers race for a budget that fits three calls."""
        guard = CostGuard(ceiling_usd=0.035)

        async def worker(i: int) -> bool:
            await asyncio.sleep(0)
            if not await guard.reserve("job", 0.01):
                return False
            await asyncio.sleep(0.001 * i)
            await guard.record("job", usage(0.01, f"b{i}"), reserved=0.01)
            return True

        admitted = await asyncio.gather(*(worker(i) for i in range(10)))

        assert sum(admitted) == 3
        assert await guard.total("job") <= 0.035
