"""Tests for src/detection/detector.py - budgeted form field detection.

Run after changes to: src/detection/*.py, src/llm/base.py
"""

import asyncio

import pytest

from src.detection import BudgetExceeded, DetectionFailure, FormFieldDetector
from src.llm import LLMProviderError
from src.models import FieldType
from src.posting import CostGuard
from tests.fakes import NO_FORM_RESPONSE, StubProvider, form_response
from tests.protocols import LLMProviderProtocol


class TestFormFieldDetector:
    def test_provider_implements_protocol(self):
        assert isinstance(StubProvider(), LLMProviderProtocol)

    def test_requires_provider(self, cost_guard):
        with pytest.raises(ValueError):
            FormFieldDetector([], cost_guard)

    def test_provider_rotation(self, cost_guard):
        first, second = StubProvider(name="first"), StubProvider(name="second")
        detector = FormFieldDetector([first, second], cost_guard)
        assert [detector.provider_for(i).name for i in range(3)] == ["first", "second", "first"]

    @pytest.mark.asyncio
    async def test_detect_records_usage(self, job, board, form_html, cost_guard):
        provider = StubProvider()
        detector = FormFieldDetector([provider], cost_guard)

        analysis = await detector.detect(form_html, job, board)

        assert analysis.by_type(FieldType.SUBMIT).selector == "button[type=submit]"
        assert await cost_guard.total(job.id) == pytest.approx(0.01)
        assert await cost_guard.total(job.id, board.id) == pytest.approx(0.01)
        assert await cost_guard.remaining(job.id) == pytest.approx(0.99)

    @pytest.mark.asyncio
    async def test_markup_is_sanitized_before_llm(self, job, board, form_html, cost_guard):
        provider = StubProvider()
        await FormFieldDetector([provider], cost_guard).detect(form_html, job, board)

        assert "track()" not in provider.prompts[0]
        assert 'id="job_title"' in provider.prompts[0]
        assert board.post_url in provider.prompts[0]

    @pytest.mark.asyncio
    async def test_budget_denied_skips_provider(self, job, board, form_html):
        guard = CostGuard(ceiling_usd=0.005)
        provider = StubProvider(estimate=0.01)

        with pytest.raises(BudgetExceeded):
            await FormFieldDetector([provider], guard).detect(form_html, job, board)

        assert provider.calls == 0
        assert await guard.total(job.id) == 0.0

    @pytest.mark.asyncio
    async def test_failed_call_is_still_charged(self, job, board, form_html, cost_guard):
        provider = StubProvider([NO_FORM_RESPONSE])

        with pytest.raises(DetectionFailure) as exc_info:
            await FormFieldDetector([provider], cost_guard).detect(form_html, job, board)

        assert not exc_info.value.soft
        assert len(await cost_guard.usage_records(job.id)) == 1
        assert await cost_guard.total(job.id) == pytest.approx(0.01)

    @pytest.mark.asyncio
    async def test_provider_error_releases_reservation(self, job, board, form_html, cost_guard):
        provider = StubProvider([LLMProviderError("down")])

        with pytest.raises(DetectionFailure):
            await FormFieldDetector([provider], cost_guard).detect(form_html, job, board)

        assert await cost_guard.remaining(job.id) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_low_confidence_is_soft_failure(self, job, board, form_html, cost_guard):
        provider = StubProvider([form_response(confidence=0.3)])
        detector = FormFieldDetector([provider], cost_guard, min_confidence=0.5)

        with pytest.raises(DetectionFailure) as exc_info:
            await detector.detect(form_html, job, board)

        assert exc_info.value.soft
        assert exc_info.value.analysis.confidence == 0.3

    @pytest.mark.asyncio
    async def test_empty_page(self, job, board, cost_guard):
        provider = StubProvider()
        with pytest.raises(DetectionFailure):
            await FormFieldDetector([provider], cost_guard).detect("", job, board)
        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_same_markup_gives_same_mapping(self, job, board, form_html, cost_guard):
        detector = FormFieldDetector([StubProvider()], cost_guard)

        first = await detector.detect(form_html, job, board)
        second = await detector.detect(form_html, job, board)

        assert first.fields == second.fields
        assert first.confidence == second.confidence

    @pytest.mark.asyncio
    async def test_cancelled_call_releases_reservation(self, job, board, form_html):
        guard = CostGuard(ceiling_usd=0.015)
        started = asyncio.Event()

        class SlowProvider(StubProvider):
            async def complete_json(self, prompt, system=None):
                started.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(FormFieldDetector([SlowProvider()], guard).detect(form_html, job, board))
        await asyncio.wait_for(started.wait(), timeout=1)
        assert await guard.remaining(job.id) == pytest.approx(0.005)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await guard.remaining(job.id) == pytest.approx(0.015)
