"""
Markdown refactoring roadmap for a completed scan record
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from .scoring import sort_by_priority, group_by_severity, hours_from_minutes, ETA_LABELS, SEVERITY_ORDER
from .pipeline.state import TIMELINE_HORIZONS

SEVERITY_HEADINGS = {
    "critical": "🔴 Critical",
    "high": "🟠 High",
    "medium": "🟡 Medium",
    "low": "🟢 Low",
}


def repository_name(repo_url: str) -> str:
    parts = [part for part in repo_url.rstrip("/").split("/") if part]
    return "/".join(parts[-2:]) if len(parts) >= 2 else repo_url


def _summary(record: Dict[str, Any], findings: List[Dict[str, Any]]) -> List[str]:
    stats = record.get("stats") or {}
    stack = ", ".join(list(stats.get("languages", [])) + list(stats.get("frameworks", []))) or "Unknown"
    total_minutes = sum(finding.get("minutesSaved", 0) for finding in findings)

    lines = [
        "## Summary",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Total issues | {len(findings)} |",
    ]
    for severity in SEVERITY_ORDER:
        count = sum(1 for finding in findings if finding.get("severity") == severity)
        lines.append(f"| {severity.capitalize()} | {count} |")
    lines.extend([
        f"| Estimated time saved | {hours_from_minutes(total_minutes)} hours |",
        f"| Files in repository | {stats.get('totalFiles', 0)} |",
        f"| Detected stack | {stack} |",
        "",
    ])
    return lines


def _finding_section(index: int, finding: Dict[str, Any]) -> List[str]:
    title = finding.get("title") or finding.get("ruleId", "Issue")
    lines = [
        f"### {index}. {title}",
        "",
        f"- **Rule:** `{finding.get('ruleId')}` ({finding.get('category')})",
        f"- **Location:** `{finding.get('file')}:{finding.get('line')}`",
        f"- **Effort:** {ETA_LABELS.get(finding.get('eta'), finding.get('eta'))}",
        f"- **Time saved:** {finding.get('minutesSaved', 0)} min",
        "",
    ]

    if finding.get("explanation"):
        lines.extend([finding["explanation"], ""])

    if finding.get("snippet"):
        lines.extend(["**Current code:**", "", "```", finding["snippet"], "```", ""])

    if finding.get("fix"):
        lines.extend(["**Suggested fix:**", "", "```", finding["fix"], "```", ""])

    timeline = finding.get("timeline") or {}
    if timeline:
        lines.append("**If left alone:**")
        lines.append("")
        for horizon in TIMELINE_HORIZONS:
            if horizon in timeline:
                lines.append(f"- *{horizon}:* {timeline[horizon]}")
        lines.append("")

    return lines


def generate_roadmap(record: Dict[str, Any]) -> str:
    findings = sort_by_priority(record.get("findings") or [])
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

    lines = [
        f"# Refactoring Roadmap: {repository_name(record.get('repoUrl', ''))}",
        "",
        f"Repository: {record.get('repoUrl', '')}",
        f"Generated: {generated}",
        "",
    ]
    lines.extend(_summary(record, findings))

    if not findings:
        lines.extend(["No issues were found in this scan.", ""])
        return "\n".join(lines)

    lines.extend(["## Prioritized Findings", ""])
    grouped = group_by_severity(findings)
    index = 1
    for severity in SEVERITY_ORDER:
        group = grouped.get(severity, [])
        if not group:
            continue
        lines.extend([f"## {SEVERITY_HEADINGS[severity]} ({len(group)})", ""])
        for finding in group:
            lines.extend(_finding_section(index, finding))
            index += 1

    return "\n".join(lines)


def roadmap_filename(record: Dict[str, Any]) -> str:
    safe_name = "".join(
        char if char.isalnum() or char == "-" else "-"
        for char in repository_name(record.get("repoUrl", "")).replace("/", "-")
    )
    return f"roadmap-{safe_name}-{record['id'][:8]}.md"
