"""
Severity, effort and priority scoring for findings

All functions here are pure: the same rule id always maps to the same
severity, whatever file or snippet it was found in.
"""

from typing import Dict, Any, List, Iterable, Optional

from .records import empty_stats

SEVERITY_MAP: Dict[str, str] = {
    # Critical: immediate security or data integrity risk
    "hardcoded-secrets": "critical",
    "hardcoded-credentials": "critical",
    "sql-injection": "critical",
    # High
    "eval-usage": "high",
    "exposed-env": "high",
    "no-validation": "high",
    # Medium
    "no-http-timeout": "medium",
    "empty-catch": "medium",
    "unhandled-promise": "medium",
    # Low
    "god-file": "low",
    "long-function": "low",
    "magic-numbers": "low",
    "todo-clusters": "low",
}

EASY_RULES = {"hardcoded-secrets", "exposed-env", "magic-numbers", "empty-catch", "no-http-timeout"}
LARGE_RULES = {"god-file", "long-function", "sql-injection", "no-validation"}

LONG_SNIPPET_CHARS = 300

TRIAGE_MINUTES = {"critical": 15, "high": 12, "medium": 7, "low": 3}
DOCUMENTATION_MINUTES = 2

SEVERITY_SCORES = {"critical": 1000, "high": 100, "medium": 10, "low": 1}
ETA_SCORES = {"easy": 3, "medium": 2, "large": 1}

ETA_LABELS = {"easy": "≤15 min", "medium": "30-60 min", "large": ">60 min"}

SEVERITY_ORDER = ["critical", "high", "medium", "low"]
CATEGORIES = ["security", "reliability", "maintainability"]


def calculate_severity(rule_id: str) -> str:
    return SEVERITY_MAP.get(rule_id, "medium")


def calculate_eta(rule_id: str, snippet: str) -> str:
    """Effort bucket from the rule type, then from snippet length"""
    if rule_id in EASY_RULES:
        return "easy"
    if rule_id in LARGE_RULES:
        return "large"
    if len(snippet or "") > LONG_SNIPPET_CHARS:
        return "large"
    return "medium"


def calculate_minutes_saved(severity: str, eta: str) -> int:
    # Triage plus documentation time; effort does not change what the roadmap saves
    return TRIAGE_MINUTES.get(severity, TRIAGE_MINUTES["medium"]) + DOCUMENTATION_MINUTES


def get_priority_score(severity: str, eta: str) -> int:
    return SEVERITY_SCORES.get(severity, 0) + ETA_SCORES.get(eta, 0)


def sort_by_priority(findings: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Critical and easy first; ties keep their original order"""
    return sorted(
        findings,
        key=lambda finding: get_priority_score(finding.get("severity"), finding.get("eta")),
        reverse=True,
    )


def group_by_severity(findings: Iterable[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    groups: Dict[str, List[Dict[str, Any]]] = {severity: [] for severity in SEVERITY_ORDER}
    for finding in findings:
        groups.setdefault(finding.get("severity", "medium"), []).append(finding)
    return groups


def hours_from_minutes(minutes: float) -> float:
    return round(minutes / 60, 1)


def calculate_stats(findings: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    stats = {
        "total": 0,
        "criticalCount": 0,
        "highCount": 0,
        "mediumCount": 0,
        "lowCount": 0,
        "totalMinutes": 0,
        "totalHours": 0.0,
        "byCategory": {category: 0 for category in CATEGORIES},
    }

    for finding in findings:
        stats["total"] += 1
        severity_key = f"{finding.get('severity')}Count"
        if severity_key in stats:
            stats[severity_key] += 1
        category = finding.get("category", "maintainability")
        stats["byCategory"][category] = stats["byCategory"].get(category, 0) + 1
        stats["totalMinutes"] += finding.get("minutesSaved", 0)

    stats["totalHours"] = hours_from_minutes(stats["totalMinutes"])
    return stats


def build_scan_stats(metadata: Optional[Dict[str, Any]], findings: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Stats object stored on a completed record"""
    stats = empty_stats()
    if metadata:
        stats["totalFiles"] = metadata.get("totalFiles", 0)
        stats["totalLines"] = metadata.get("totalLines", 0)
        stats["languages"] = list(metadata.get("languages", []))
        stats["frameworks"] = list(metadata.get("frameworks", []))

    aggregate = calculate_stats(findings)
    for key in ("criticalCount", "highCount", "mediumCount", "lowCount", "totalMinutes", "totalHours", "byCategory"):
        stats[key] = aggregate[key]
    return stats
