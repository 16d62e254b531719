"""
Line-based detection rules used by the pattern analyzer
"""

import re
from dataclasses import dataclass
from typing import List, Pattern

from ..pipeline.state import RawFinding

MAX_SNIPPET_CHARS = 200

COMMENT_PREFIXES = ("//", "/*", "*", "#")

CODE_FILE_PATTERN = re.compile(r"\.(js|jsx|ts|tsx|py|java|rb|php|go|cs|cpp|c)$", re.IGNORECASE)
EXCLUDED_PATH_MARKERS = ("node_modules/", "vendor/", ".min.")

LINE_COMMENT = re.compile(r"(?<!:)//")


@dataclass(frozen=True)
class DetectionRule:
    rule_id: str
    category: str
    regex: Pattern

    def matches(self, code: str) -> bool:
        return self.regex.search(code) is not None


class MagicNumberRule(DetectionRule):
    """Numbers other than 0/1 that are not the value of a named constant"""

    CONSTANT_PREFIX = re.compile(r"const\s+\w+\s*=\s*$")

    def matches(self, code: str) -> bool:
        for match in self.regex.finditer(code):
            if not self.CONSTANT_PREFIX.search(code[:match.start()]):
                return True
        return False


DETECTION_RULES: List[DetectionRule] = [
    # Security
    DetectionRule(
        "hardcoded-secrets", "security",
        re.compile(r"""(API_KEY|SECRET_KEY|PRIVATE_KEY|ACCESS_KEY|AUTH_TOKEN|PASSWORD)\s*=\s*["'][^"'\s]{15,}["']""",
                   re.IGNORECASE),
    ),
    DetectionRule(
        "hardcoded-credentials", "security",
        re.compile(r"(postgresql|mysql|mongodb)://[^:]+:[^@]+@", re.IGNORECASE),
    ),
    DetectionRule(
        "sql-injection", "security",
        re.compile(r"""(query|execute)\s*\(\s*["'].*?\+.*?["']\s*\)""", re.IGNORECASE),
    ),
    DetectionRule(
        "eval-usage", "security",
        re.compile(r"\beval\s*\(|new\s+Function\s*\("),
    ),
    # Reliability
    DetectionRule(
        "no-http-timeout", "reliability",
        re.compile(r"fetch\s*\([^)]+\)(?![^{]*timeout)", re.IGNORECASE),
    ),
    DetectionRule(
        "empty-catch", "reliability",
        re.compile(r"catch\s*\([^)]*\)\s*\{\s*\}"),
    ),
    DetectionRule(
        "unhandled-promise", "reliability",
        re.compile(r"\.then\s*\([^)]+\)(?!\s*\.catch)"),
    ),
    # Maintainability
    DetectionRule(
        "todo-clusters", "maintainability",
        re.compile(r"TODO|FIXME|HACK|XXX", re.IGNORECASE),
    ),
    MagicNumberRule(
        "magic-numbers", "maintainability",
        re.compile(r"\b([2-9]|[1-9]\d{2,})\b"),
    ),
]


def is_code_file(path: str) -> bool:
    if not CODE_FILE_PATTERN.search(path):
        return False
    return not any(marker in path for marker in EXCLUDED_PATH_MARKERS)


def strip_comments(line: str) -> str:
    """Drop trailing // and # comments; the // of a URL scheme is kept"""
    code = line
    slash_comment = LINE_COMMENT.search(code)
    if slash_comment:
        code = code[:slash_comment.start()]
    hash_index = code.find("#")
    if hash_index != -1:
        code = code[:hash_index]
    return code


def scan_content(path: str, content: str, rules: List[DetectionRule] = DETECTION_RULES) -> List[RawFinding]:
    findings = []

    for index, line in enumerate(content.split("\n")):
        trimmed = line.strip()
        if trimmed.startswith(COMMENT_PREFIXES):
            continue

        code = strip_comments(line)
        if not code.strip():
            continue

        for rule in rules:
            if rule.matches(code):
                findings.append(RawFinding(
                    rule_id=rule.rule_id,
                    category=rule.category,
                    file=path,
                    line=index + 1,
                    snippet=trimmed[:MAX_SNIPPET_CHARS],
                ))

    return findings
