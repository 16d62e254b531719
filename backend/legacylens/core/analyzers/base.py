"""
Analyzer port: the code-inspection capability the pipeline depends on
"""

from abc import ABC, abstractmethod
from typing import List

from ..pipeline.state import RawFinding, RepoMetadata


class AnalyzerPort(ABC):
    """
    Returns raw findings and repository metadata for a repository URL

    An empty list is a successful scan. Any failure (network, auth,
    timeout, missing repository) is raised, never reported as zero findings.
    """

    name: str = "analyzer"

    @abstractmethod
    async def get_metadata(self, repo_url: str) -> RepoMetadata:
        ...

    @abstractmethod
    async def scan(self, repo_url: str) -> List[RawFinding]:
        ...
