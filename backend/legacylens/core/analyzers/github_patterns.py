"""
Fast deterministic analyzer: regex rules over files fetched from GitHub
"""

import asyncio
import re
from typing import List

from .base import AnalyzerPort
from .github_client import GitHubClient, parse_github_url
from .patterns import scan_content, is_code_file
from ..pipeline.state import RawFinding, RepoMetadata
from ..logging.structured_logger import get_logger, log_performance, EventType

logger = get_logger(__name__)

LANGUAGE_PATTERNS = [
    ("JavaScript", re.compile(r"\.(js|jsx)$", re.IGNORECASE)),
    ("TypeScript", re.compile(r"\.(ts|tsx)$", re.IGNORECASE)),
    ("Python", re.compile(r"\.py$", re.IGNORECASE)),
    ("Java", re.compile(r"\.java$", re.IGNORECASE)),
    ("Ruby", re.compile(r"\.rb$", re.IGNORECASE)),
    ("Go", re.compile(r"\.go$", re.IGNORECASE)),
    ("PHP", re.compile(r"\.php$", re.IGNORECASE)),
]

FRAMEWORK_MANIFESTS = [
    ("package.json", "Node.js"),
    ("requirements.txt", "Python"),
    ("Gemfile", "Ruby"),
    ("go.mod", "Go"),
    ("pom.xml", "Maven"),
]


def detect_languages(paths: List[str]) -> List[str]:
    return [name for name, pattern in LANGUAGE_PATTERNS if any(pattern.search(path) for path in paths)]


def detect_frameworks(paths: List[str]) -> List[str]:
    present = set(paths)
    return [framework for manifest, framework in FRAMEWORK_MANIFESTS if manifest in present]


class GitHubPatternAnalyzer(AnalyzerPort):

    name = "pattern"

    def __init__(
        self,
        client: GitHubClient,
        max_files: int = 100,
        batch_size: int = 10,
        batch_pause: float = 0.5
    ):
        self.client = client
        self.max_files = max_files
        self.batch_size = max(1, batch_size)
        self.batch_pause = batch_pause

    async def get_metadata(self, repo_url: str) -> RepoMetadata:
        owner, repo = parse_github_url(repo_url)
        paths = await self.client.get_tree(owner, repo)

        # Line counts would need every file fetched, so they are not computed
        return RepoMetadata(
            languages=detect_languages(paths),
            frameworks=detect_frameworks(paths),
            total_files=len(paths),
            total_lines=0,
        )

    @log_performance("pattern_scan")
    async def scan(self, repo_url: str) -> List[RawFinding]:
        owner, repo = parse_github_url(repo_url)
        paths = await self.client.get_tree(owner, repo)
        code_files = [path for path in paths if is_code_file(path)][:self.max_files]

        logger.info(
            f"Scanning {len(code_files)} of {len(paths)} files in {owner}/{repo}",
            event_type=EventType.FINDING_DETECTED,
            metadata={"repository": f"{owner}/{repo}", "code_files": len(code_files)}
        )

        findings: List[RawFinding] = []
        for start in range(0, len(code_files), self.batch_size):
            batch = code_files[start:start + self.batch_size]
            contents = await self.client.get_file_contents(owner, repo, batch)
            for path in batch:
                findings.extend(scan_content(path, contents.get(path, "")))

            if start + self.batch_size < len(code_files) and self.batch_pause > 0:
                await asyncio.sleep(self.batch_pause)

        logger.info(
            f"Pattern scan found {len(findings)} issues in {owner}/{repo}",
            event_type=EventType.FINDING_DETECTED,
            metadata={"findings": len(findings)}
        )
        return findings
