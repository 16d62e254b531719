"""
Quick pattern scan first, escalated to a deep semantic scan only when
the quick pass turns up something serious
"""

from typing import List, Sequence

from .base import AnalyzerPort
from ..pipeline.state import RawFinding, RepoMetadata
from ..logging.structured_logger import get_logger, EventType

logger = get_logger(__name__)

DEFAULT_ESCALATION_MARKERS = ("injection", "secret", "eval")


def dedupe_findings(findings: List[RawFinding]) -> List[RawFinding]:
    """Drop repeats of file:line:ruleId, keeping the first occurrence"""
    seen = set()
    unique = []
    for finding in findings:
        key = f"{finding.file}:{finding.line}:{finding.rule_id}"
        if key in seen:
            continue
        seen.add(key)
        unique.append(finding)
    return unique


class HybridAnalyzer(AnalyzerPort):

    name = "hybrid"

    def __init__(
        self,
        quick: AnalyzerPort,
        deep: AnalyzerPort,
        escalation_category: str = "security",
        escalation_markers: Sequence[str] = DEFAULT_ESCALATION_MARKERS
    ):
        self.quick = quick
        self.deep = deep
        self.escalation_category = escalation_category
        self.escalation_markers = tuple(marker.lower() for marker in escalation_markers)

    def should_escalate(self, findings: List[RawFinding]) -> bool:
        return any(
            finding.category == self.escalation_category
            and any(marker in finding.rule_id.lower() for marker in self.escalation_markers)
            for finding in findings
        )

    async def get_metadata(self, repo_url: str) -> RepoMetadata:
        return await self.quick.get_metadata(repo_url)

    async def scan(self, repo_url: str) -> List[RawFinding]:
        quick_findings = await self.quick.scan(repo_url)

        if not self.should_escalate(quick_findings):
            logger.info(
                f"No critical issues in quick scan of {repo_url}, skipping {self.deep.name} analysis",
                event_type=EventType.FINDING_DETECTED,
                metadata={"quick_findings": len(quick_findings)}
            )
            return quick_findings

        logger.info(
            f"Critical issues found, escalating to {self.deep.name} analysis",
            event_type=EventType.FINDING_DETECTED,
            metadata={"quick_findings": len(quick_findings)}
        )

        try:
            deep_findings = await self.deep.scan(repo_url)
        except Exception as e:
            logger.warning(
                f"{self.deep.name} analysis failed, keeping quick scan results",
                error=e,
                event_type=EventType.EXTERNAL_SERVICE
            )
            return quick_findings

        return dedupe_findings(quick_findings + deep_findings)
