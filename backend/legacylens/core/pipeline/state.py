"""
Pipeline state and the reducers that merge phase updates into it

Each phase returns a PipelineUpdate holding only what it produced. The
pipeline folds updates into PipelineState with one reducer per field:
``logs`` is appended, every other field is replaced when present.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..records import now_ms

TIMELINE_HORIZONS = ["3 months", "6 months", "1 year", "2 years"]


def make_timeline(values: List[str]) -> Dict[str, str]:
    return dict(zip(TIMELINE_HORIZONS, values))


@dataclass(frozen=True)
class LogEntry:
    timestamp: int
    phase: str
    message: str

    @classmethod
    def create(cls, phase: str, message: str) -> "LogEntry":
        return cls(timestamp=now_ms(), phase=phase, message=message)

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "phase": self.phase, "message": self.message}


@dataclass
class RawFinding:
    rule_id: str
    category: str
    file: str
    line: int
    snippet: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "category": self.category,
            "file": self.file,
            "line": self.line,
            "snippet": self.snippet,
        }


@dataclass
class RepoMetadata:
    languages: List[str] = field(default_factory=list)
    frameworks: List[str] = field(default_factory=list)
    total_files: int = 0
    total_lines: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "languages": list(self.languages),
            "frameworks": list(self.frameworks),
            "totalFiles": self.total_files,
            "totalLines": self.total_lines,
        }


@dataclass
class EnrichedFinding:
    id: str
    rule_id: str
    category: str
    severity: str
    eta: str
    file: str
    line: int
    snippet: str
    title: str
    explanation: str
    fix: str
    timeline: Dict[str, str]
    minutes_saved: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ruleId": self.rule_id,
            "category": self.category,
            "severity": self.severity,
            "eta": self.eta,
            "file": self.file,
            "line": self.line,
            "snippet": self.snippet,
            "title": self.title,
            "explanation": self.explanation,
            "fix": self.fix,
            "timeline": dict(self.timeline),
            "minutesSaved": self.minutes_saved,
        }


@dataclass
class PipelineState:
    scan_id: str
    repo_url: str
    repo_metadata: Optional[RepoMetadata] = None
    findings: List[RawFinding] = field(default_factory=list)
    enriched_findings: List[EnrichedFinding] = field(default_factory=list)
    logs: List[LogEntry] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class PipelineUpdate:
    """Partial state produced by one phase; None means "not produced" """
    repo_metadata: Optional[RepoMetadata] = None
    findings: Optional[List[RawFinding]] = None
    enriched_findings: Optional[List[EnrichedFinding]] = None
    error: Optional[str] = None
    logs: List[LogEntry] = field(default_factory=list)

    def is_empty(self) -> bool:
        return (
            not self.logs
            and self.repo_metadata is None
            and self.findings is None
            and self.enriched_findings is None
            and self.error is None
        )


def append_reducer(current: List[Any], update: Optional[List[Any]]) -> List[Any]:
    if not update:
        return current
    return current + list(update)


def replace_if_present(current: Any, update: Any) -> Any:
    return current if update is None else update


STATE_REDUCERS: Dict[str, Callable[[Any, Any], Any]] = {
    "repo_metadata": replace_if_present,
    "findings": replace_if_present,
    "enriched_findings": replace_if_present,
    "error": replace_if_present,
    "logs": append_reducer,
}


def merge_state(state: PipelineState, update: PipelineUpdate) -> PipelineState:
    """Return a new state with the update folded in"""
    changes = {
        name: reducer(getattr(state, name), getattr(update, name))
        for name, reducer in STATE_REDUCERS.items()
    }
    return dataclasses.replace(state, **changes)
