"""
Builds the (primary, fallback) analyzer pair for the configured strategy
"""

from typing import Optional, Tuple

from .base import AnalyzerPort
from .github_client import GitHubClient
from .github_patterns import GitHubPatternAnalyzer
from .greptile import GreptileAnalyzer
from .hybrid import HybridAnalyzer
from ..logging.structured_logger import get_logger

logger = get_logger(__name__)

ANALYZER_STRATEGIES = ("pattern", "ai", "hybrid")


def build_analyzers(settings) -> Tuple[AnalyzerPort, Optional[AnalyzerPort]]:
    strategy = settings.analyzer_strategy.lower()
    if strategy not in ANALYZER_STRATEGIES:
        raise ValueError(f"Unknown analyzer strategy: {settings.analyzer_strategy}")

    client = GitHubClient(api_url=settings.github_api_url, token=settings.github_token)
    pattern = GitHubPatternAnalyzer(
        client,
        max_files=settings.max_files_per_scan,
        batch_size=settings.file_batch_size,
        batch_pause=settings.file_batch_pause_seconds,
    )

    if strategy == "pattern":
        return pattern, None

    if not settings.greptile_api_key:
        logger.warning(f"Analyzer strategy '{strategy}' needs GREPTILE_API_KEY, using pattern analysis")
        return pattern, None

    greptile = GreptileAnalyzer(
        api_key=settings.greptile_api_key,
        github_client=client,
        api_url=settings.greptile_api_url,
        github_token=settings.github_token,
        poll_interval=settings.greptile_poll_interval_seconds,
        index_timeout=settings.greptile_index_timeout_seconds,
        reindex_delay=settings.greptile_reindex_delay_seconds,
        max_reindex_attempts=settings.greptile_max_reindex_attempts,
        min_request_interval=settings.greptile_min_request_interval_seconds,
    )

    if strategy == "ai":
        return greptile, pattern

    hybrid = HybridAnalyzer(
        pattern,
        greptile,
        escalation_category=settings.hybrid_escalation_category,
        escalation_markers=settings.hybrid_escalation_markers,
    )
    return hybrid, pattern
