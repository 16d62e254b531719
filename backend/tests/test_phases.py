"""
Unit tests for the individual scan phases
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from legacylens.core.pipeline.phases import (
    PlanPhase, HuntPhase, ExplainPhase, WritePhase, fallback_finding,
    FALLBACK_EXPLANATION, FALLBACK_FIX, FALLBACK_ETA, FALLBACK_MINUTES_SAVED
)
from legacylens.core.pipeline.state import PipelineState, make_timeline
from tests.fakes import FakeAnalyzer, FakeEnricher, raw_finding, connectivity_error, REPO_URL


def new_state(**kwargs) -> PipelineState:
    return PipelineState(scan_id="scan-1", repo_url=REPO_URL, **kwargs)


class CountingEnricher(FakeEnricher):
    """Tracks how many enrichments are in flight at once"""

    def __init__(self, sleep):
        super().__init__()
        self.sleep = sleep
        self.in_flight = 0
        self.peak = 0

    async def enrich(self, rule_id, file, snippet):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await self.sleep(0.01)
            return await super().enrich(rule_id, file, snippet)
        finally:
            self.in_flight -= 1


class TestPlanPhase:

    @pytest.mark.asyncio
    async def test_reports_detected_stack(self):
        update = await PlanPhase(FakeAnalyzer())(new_state())

        assert update.repo_metadata.total_files == 42
        assert update.error is None
        messages = [entry.message for entry in update.logs]
        assert "Detected: JavaScript, Node.js" in messages
        assert all(entry.phase == "plan" for entry in update.logs)

    @pytest.mark.asyncio
    async def test_metadata_failure_sets_error_with_single_log(self):
        update = await PlanPhase(FakeAnalyzer(metadata_error=connectivity_error()))(new_state())

        assert update.error == "Connection refused by api.github.com"
        assert len(update.logs) == 1
        assert update.logs[0].phase == "plan"
        assert update.logs[0].message.startswith("Error: ")
        assert update.repo_metadata is None

    @pytest.mark.asyncio
    async def test_skipped_when_state_has_error(self):
        analyzer = FakeAnalyzer()
        update = await PlanPhase(analyzer)(new_state(error="earlier failure"))

        assert update.is_empty()
        assert analyzer.metadata_calls == 0


class TestHuntPhase:

    @pytest.mark.asyncio
    async def test_category_breakdown(self):
        analyzer = FakeAnalyzer([
            raw_finding(),
            raw_finding(rule_id="empty-catch", category="reliability", line=5),
            raw_finding(rule_id="magic-numbers", category="maintainability", line=6),
            raw_finding(rule_id="todo-clusters", category="maintainability", line=7),
        ])
        update = await HuntPhase(analyzer)(new_state())

        assert len(update.findings) == 4
        messages = [entry.message for entry in update.logs]
        assert "✓ Security: 1 issues" in messages
        assert "✓ Reliability: 1 issues" in messages
        assert "✓ Maintainability: 2 issues" in messages

    @pytest.mark.asyncio
    async def test_empty_result_is_success(self):
        update = await HuntPhase(FakeAnalyzer([]))(new_state())

        assert update.error is None
        assert update.findings == []

    @pytest.mark.asyncio
    async def test_falls_back_when_primary_raises(self):
        primary = FakeAnalyzer(name="greptile", scan_error=connectivity_error())
        fallback = FakeAnalyzer([raw_finding()], name="pattern")

        update = await HuntPhase(primary, fallback)(new_state())

        assert update.error is None
        assert len(update.findings) == 1
        assert fallback.scan_calls == 1
        assert "greptile analysis unavailable, using pattern analysis" in [e.message for e in update.logs]

    @pytest.mark.asyncio
    async def test_fails_without_fallback(self):
        update = await HuntPhase(FakeAnalyzer(scan_error=connectivity_error()))(new_state())

        assert update.error is not None
        assert update.findings is None

    @pytest.mark.asyncio
    async def test_fails_when_fallback_also_raises(self):
        primary = FakeAnalyzer(scan_error=connectivity_error())
        fallback = FakeAnalyzer(scan_error=RuntimeError("fallback down"))

        update = await HuntPhase(primary, fallback)(new_state())

        assert update.error == "fallback down"


class TestExplainPhase:

    @pytest.mark.asyncio
    async def test_enriches_every_finding(self):
        findings = [raw_finding(line=i) for i in range(1, 8)]
        enricher = FakeEnricher()

        update = await ExplainPhase(enricher, batch_size=5, batch_pause=0)(new_state(findings=findings))

        assert len(update.enriched_findings) == 7
        assert len(enricher.calls) == 7
        first = update.enriched_findings[0]
        assert first.severity == "critical"
        assert first.eta == "easy"
        assert first.minutes_saved == 17
        assert first.title == "Explanation for hardcoded-secrets"
        assert first.timeline["3 months"] == "soon"

    @pytest.mark.asyncio
    async def test_batches_are_bounded_and_paused(self):
        findings = [raw_finding(line=i) for i in range(1, 8)]
        enricher = CountingEnricher(asyncio.sleep)
        pause = AsyncMock()

        with patch("legacylens.core.pipeline.phases.asyncio.sleep", new=pause):
            update = await ExplainPhase(enricher, batch_size=5, batch_pause=1.5)(new_state(findings=findings))

        assert len(update.enriched_findings) == 7
        assert enricher.peak == 5
        pause.assert_awaited_once_with(1.5)

    @pytest.mark.asyncio
    async def test_single_batch_has_no_pause(self):
        findings = [raw_finding(line=i) for i in range(1, 6)]
        pause = AsyncMock()

        with patch("legacylens.core.pipeline.phases.asyncio.sleep", new=pause):
            await ExplainPhase(FakeEnricher(), batch_size=5, batch_pause=1.5)(new_state(findings=findings))

        pause.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_one_failure_is_isolated(self):
        findings = [
            raw_finding(file="a.js"),
            raw_finding(file="b.js", rule_id="empty-catch", category="reliability"),
            raw_finding(file="c.js"),
        ]
        enricher = FakeEnricher(fail_for={"b.js"})

        update = await ExplainPhase(enricher, batch_pause=0)(new_state(findings=findings))

        assert update.error is None
        assert [finding.file for finding in update.enriched_findings] == ["a.js", "b.js", "c.js"]

        failed = update.enriched_findings[1]
        expected = fallback_finding(findings[1])
        assert failed.explanation == FALLBACK_EXPLANATION == expected.explanation
        assert failed.fix == FALLBACK_FIX
        assert failed.eta == FALLBACK_ETA
        assert failed.minutes_saved == FALLBACK_MINUTES_SAVED
        assert failed.title == expected.title == "empty catch in b.js"
        assert failed.timeline == expected.timeline
        assert failed.severity == "medium"

    @pytest.mark.asyncio
    async def test_skipped_without_findings(self):
        enricher = FakeEnricher()
        update = await ExplainPhase(enricher)(new_state())

        assert update.is_empty()
        assert enricher.calls == []


class TestWritePhase:

    @pytest.mark.asyncio
    async def test_summarizes_without_changing_findings(self):
        findings = [raw_finding(), raw_finding(line=2)]
        explained = await ExplainPhase(FakeEnricher(), batch_pause=0)(new_state(findings=findings))
        state = new_state(findings=findings, enriched_findings=explained.enriched_findings)

        update = await WritePhase()(state)

        assert update.enriched_findings is None
        messages = [entry.message for entry in update.logs]
        assert "✓ Scan complete - Found 2 issues" in messages
        assert "✓ Time saved: 0.6 hours" in messages

    @pytest.mark.asyncio
    async def test_skipped_without_enriched_findings(self):
        assert (await WritePhase()(new_state())).is_empty()


def test_fallback_timeline_shape():
    finding = fallback_finding(raw_finding())
    assert finding.timeline == make_timeline(["Issue detected", "Problem persists", "Refactor needed",
                                              "Technical debt grows"])
