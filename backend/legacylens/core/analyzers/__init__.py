"""
Analyzer port and its implementations
"""

from .base import AnalyzerPort
from .factory import build_analyzers
from .github_client import GitHubClient, parse_github_url
from .github_patterns import GitHubPatternAnalyzer
from .greptile import GreptileAnalyzer
from .hybrid import HybridAnalyzer

__all__ = [
    "AnalyzerPort",
    "GitHubClient",
    "GitHubPatternAnalyzer",
    "GreptileAnalyzer",
    "HybridAnalyzer",
    "build_analyzers",
    "parse_github_url",
]
