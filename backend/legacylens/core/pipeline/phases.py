"""
The four scan phases: plan, hunt, explain, write

A phase reads the current PipelineState and returns a PipelineUpdate. It
never touches the store or the progress channel; the pipeline does that
when it merges the update.
"""

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from typing import List, Optional

from ..analyzers.base import AnalyzerPort
from ..enrichment.base import EnricherPort
from ..scoring import (
    calculate_severity, calculate_eta, calculate_minutes_saved, hours_from_minutes
)
from ..logging.structured_logger import get_logger
from .state import (
    PipelineState, PipelineUpdate, LogEntry, RawFinding, EnrichedFinding, make_timeline
)

logger = get_logger(__name__)

FALLBACK_EXPLANATION = "Unable to generate explanation"
FALLBACK_FIX = "// Fix could not be generated"
FALLBACK_TIMELINE = ["Issue detected", "Problem persists", "Refactor needed", "Technical debt grows"]
FALLBACK_ETA = "medium"
FALLBACK_MINUTES_SAVED = 10


class Phase(ABC):
    """Base class for a pipeline phase"""

    name: str = ""

    async def __call__(self, state: PipelineState) -> PipelineUpdate:
        if state.error or self.should_skip(state):
            logger.pipeline_phase(self.name, "skipped")
            return PipelineUpdate()

        start_time = time.time()
        try:
            update = await self.run(state)
        except Exception as e:
            logger.pipeline_phase(self.name, "failed", (time.time() - start_time) * 1000,
                                  metadata={"error": str(e)})
            return PipelineUpdate(
                error=str(e),
                logs=[LogEntry.create(self.name, f"Error: {e}")]
            )

        logger.pipeline_phase(self.name, "completed", (time.time() - start_time) * 1000)
        return update

    def should_skip(self, state: PipelineState) -> bool:
        return False

    def log(self, message: str) -> LogEntry:
        return LogEntry.create(self.name, message)

    @abstractmethod
    async def run(self, state: PipelineState) -> PipelineUpdate:
        ...


class PlanPhase(Phase):
    """Fetch repository metadata and describe the scan strategy"""

    name = "plan"

    def __init__(self, analyzer: AnalyzerPort):
        self.analyzer = analyzer

    async def run(self, state: PipelineState) -> PipelineUpdate:
        metadata = await self.analyzer.get_metadata(state.repo_url)

        detected = ", ".join(metadata.languages) or "Unknown"
        if metadata.frameworks:
            detected = f"{detected}, {', '.join(metadata.frameworks)}"

        logs = [
            self.log("Initializing agent..."),
            self.log("Connecting to repository..."),
            self.log("Analyzing codebase structure..."),
            self.log(f"Detected: {detected}"),
            self.log(f"Files: {metadata.total_files} | Strategy: Security → Reliability → Maintainability"),
        ]
        return PipelineUpdate(repo_metadata=metadata, logs=logs)


class HuntPhase(Phase):
    """
    Run the analyzer and report counts per category

    When the primary analyzer raises and a fallback analyzer is configured,
    the fallback's findings are used instead of failing the scan.
    """

    name = "hunt"

    def __init__(self, analyzer: AnalyzerPort, fallback_analyzer: Optional[AnalyzerPort] = None):
        self.analyzer = analyzer
        self.fallback_analyzer = fallback_analyzer

    async def run(self, state: PipelineState) -> PipelineUpdate:
        logs = [self.log("Agent: Hunting for issues...")]

        try:
            findings = await self.analyzer.scan(state.repo_url)
        except Exception as e:
            if self.fallback_analyzer is None:
                raise
            logger.warning(
                f"Analyzer '{self.analyzer.name}' failed, falling back to '{self.fallback_analyzer.name}'",
                error=e,
                metadata={"primary": self.analyzer.name, "fallback": self.fallback_analyzer.name}
            )
            logs.append(self.log(f"{self.analyzer.name} analysis unavailable, using {self.fallback_analyzer.name} analysis"))
            findings = await self.fallback_analyzer.scan(state.repo_url)

        for category in ("security", "reliability", "maintainability"):
            count = sum(1 for finding in findings if finding.category == category)
            logs.append(self.log(f"✓ {category.capitalize()}: {count} issues"))

        return PipelineUpdate(findings=list(findings), logs=logs)


class ExplainPhase(Phase):
    """Enrich findings in bounded concurrent batches"""

    name = "explain"

    def __init__(self, enricher: EnricherPort, batch_size: int = 5, batch_pause: float = 1.0):
        self.enricher = enricher
        self.batch_size = max(1, batch_size)
        self.batch_pause = batch_pause

    def should_skip(self, state: PipelineState) -> bool:
        return not state.findings

    async def run(self, state: PipelineState) -> PipelineUpdate:
        total = len(state.findings)
        logs = [
            self.log("Agent: Generating timeline predictions..."),
            self.log(f"└─ Analyzing {total} findings..."),
        ]

        enriched: List[EnrichedFinding] = []
        for start in range(0, total, self.batch_size):
            batch = state.findings[start:start + self.batch_size]
            enriched.extend(await asyncio.gather(*(self._enrich_one(finding) for finding in batch)))
            logger.debug(f"Enriched {len(enriched)}/{total} findings")

            if start + self.batch_size < total and self.batch_pause > 0:
                await asyncio.sleep(self.batch_pause)

        logs.append(self.log("Agent: Calculating future pain impact..."))
        return PipelineUpdate(enriched_findings=enriched, logs=logs)

    async def _enrich_one(self, finding: RawFinding) -> EnrichedFinding:
        try:
            enrichment = await self.enricher.enrich(finding.rule_id, finding.file, finding.snippet)
        except Exception as e:
            logger.warning(f"Enrichment failed for {finding.rule_id} in {finding.file}", error=e)
            return fallback_finding(finding)

        severity = calculate_severity(finding.rule_id)
        eta = calculate_eta(finding.rule_id, finding.snippet)
        return EnrichedFinding(
            id=str(uuid.uuid4()),
            rule_id=finding.rule_id,
            category=finding.category,
            severity=severity,
            eta=eta,
            file=finding.file,
            line=finding.line,
            snippet=finding.snippet,
            title=enrichment.explanation.split(".")[0] or finding.rule_id.replace("-", " "),
            explanation=enrichment.explanation,
            fix=enrichment.fix,
            timeline=dict(enrichment.timeline),
            minutes_saved=calculate_minutes_saved(severity, eta),
        )


def fallback_finding(finding: RawFinding) -> EnrichedFinding:
    """Shape emitted for a finding whose enrichment raised"""
    return EnrichedFinding(
        id=str(uuid.uuid4()),
        rule_id=finding.rule_id,
        category=finding.category,
        severity=calculate_severity(finding.rule_id),
        eta=FALLBACK_ETA,
        file=finding.file,
        line=finding.line,
        snippet=finding.snippet,
        title=f"{finding.rule_id.replace('-', ' ')} in {finding.file}",
        explanation=FALLBACK_EXPLANATION,
        fix=FALLBACK_FIX,
        timeline=make_timeline(FALLBACK_TIMELINE),
        minutes_saved=FALLBACK_MINUTES_SAVED,
    )


class WritePhase(Phase):
    """Summarize the enriched findings; content is left untouched"""

    name = "write"

    def should_skip(self, state: PipelineState) -> bool:
        return not state.enriched_findings

    async def run(self, state: PipelineState) -> PipelineUpdate:
        findings = state.enriched_findings
        total_minutes = sum(finding.minutes_saved for finding in findings)

        logs = [
            self.log("Agent: Compiling refactor roadmap..."),
            self.log("└─ Prioritizing by severity × effort..."),
            self.log(f"✓ Scan complete - Found {len(findings)} issues"),
            self.log(f"✓ Time saved: {hours_from_minutes(total_minutes)} hours"),
        ]
        return PipelineUpdate(logs=logs)
