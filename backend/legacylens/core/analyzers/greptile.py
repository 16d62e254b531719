"""
Semantic analyzer backed by the Greptile API

Flow: submit the repository for indexing, wait until the index is ready,
then ask one natural-language query for issues as a JSON array. A stale
index (HTTP 410) is repaired here by re-indexing and retrying; callers
only ever see success or an exception.
"""

import asyncio
import json
import re
import time
import uuid
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from .base import AnalyzerPort
from .github_client import GitHubClient, parse_github_url
from ..cache.cache_manager import cache_manager, CacheManager, CacheLevel
from ..error_handling.exceptions import (
    AuthenticationException, GreptileServiceException, IndexExpiredException,
    IndexingTimeoutException, RateLimitException, RepositoryNotFoundException
)
from ..error_handling.error_handler import with_error_handling, RetryConfig
from ..resilience.circuit_breaker import circuit_breaker, CircuitBreakerConfig
from ..resilience.rate_limiter import rate_limiter_manager, RateLimitConfig
from ..pipeline.state import RawFinding, RepoMetadata
from ..logging.structured_logger import get_logger, EventType

logger = get_logger(__name__)

ISSUES_QUERY = """Analyze this codebase for code-quality issues a team would want on a refactoring roadmap.
Look for security problems (hardcoded secrets or credentials, injection, eval), reliability problems
(missing timeouts, swallowed errors, unhandled promises, missing validation) and maintainability
problems (very large files, long functions, magic numbers, clusters of TODOs).

Respond with ONLY a JSON array, no additional text. Each element must have:
{"ruleId": "kebab-case-rule-id", "category": "security|reliability|maintainability",
 "file": "path/to/file", "line": 123, "snippet": "the offending line of code"}
Return at most 30 issues, most important first."""

CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
JSON_ARRAY = re.compile(r"\[.*\]", re.DOTALL)

REQUEST_TIMEOUT_SECONDS = 120.0
REQUEST_RETRY = RetryConfig(max_attempts=3, base_delay_seconds=2.0, max_delay_seconds=30.0,
                            non_retryable_exceptions=[IndexExpiredException])
# The breaker wraps the whole retry loop, so its timeout spans every attempt plus backoff
REQUEST_BREAKER = CircuitBreakerConfig(
    failure_threshold=5,
    recovery_timeout=60.0,
    timeout=(REQUEST_TIMEOUT_SECONDS + REQUEST_RETRY.max_delay_seconds) * REQUEST_RETRY.max_attempts
)


def format_repo_id(owner: str, repo: str, branch: str = "main") -> str:
    return f"github:{branch}:{owner}/{repo}"


def parse_repo_id(repo_id: str):
    """(remote, branch, owner/repo) from github:branch:owner/repo"""
    parts = repo_id.split(":")
    if len(parts) != 3:
        raise GreptileServiceException(f"Invalid repository id format: {repo_id}")
    return parts[0], parts[1], parts[2]


def map_category(category: Optional[str]) -> str:
    normalized = (category or "").lower()
    if "security" in normalized or "vulnerability" in normalized:
        return "security"
    if "reliability" in normalized or "error" in normalized or "bug" in normalized:
        return "reliability"
    return "maintainability"


def parse_issues(message: str) -> List[Dict[str, Any]]:
    """Pull the JSON array of issues out of a query answer"""
    text = message or ""
    fenced = CODE_FENCE.search(text)
    if fenced:
        text = fenced.group(1)

    match = JSON_ARRAY.search(text)
    if not match:
        raise GreptileServiceException("Query answer did not contain a JSON array")
    try:
        issues = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise GreptileServiceException(f"Query answer was not valid JSON: {e}", cause=e) from e
    return [issue for issue in issues if isinstance(issue, dict)]


def to_raw_finding(issue: Dict[str, Any]) -> RawFinding:
    try:
        line = int(issue.get("line") or 0)
    except (TypeError, ValueError):
        line = 0
    return RawFinding(
        rule_id=issue.get("ruleId") or "unknown-issue",
        category=map_category(issue.get("category")),
        file=issue.get("file") or "unknown",
        line=line,
        snippet=issue.get("snippet") or "No snippet available",
    )


class GreptileAnalyzer(AnalyzerPort):

    name = "greptile"

    def __init__(
        self,
        api_key: str,
        github_client: GitHubClient,
        api_url: str = "https://api.greptile.com/v2",
        github_token: str = "",
        cache: Optional[CacheManager] = None,
        poll_interval: float = 5.0,
        index_timeout: float = 300.0,
        reindex_delay: float = 30.0,
        max_reindex_attempts: int = 2,
        min_request_interval: float = 0.5
    ):
        self.api_key = api_key
        self.github_client = github_client
        self.api_url = api_url.rstrip("/")
        self.github_token = github_token
        self.cache = cache or cache_manager
        self.poll_interval = poll_interval
        self.index_timeout = index_timeout
        self.reindex_delay = reindex_delay
        self.max_reindex_attempts = max_reindex_attempts
        self.limiter = rate_limiter_manager.get_rate_limiter(
            "greptile_api",
            RateLimitConfig(max_requests=60, time_window_seconds=60, min_interval_seconds=min_request_interval)
        )
        self.timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-GitHub-Token": self.github_token or "",
        }

    @circuit_breaker("greptile_api", REQUEST_BREAKER)
    @with_error_handling(REQUEST_RETRY, handler_name="greptile_api")
    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None,
                       repository: str = "") -> Dict[str, Any]:
        await self.limiter.acquire()
        start_time = time.time()
        success = False

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(method, f"{self.api_url}{path}", json=payload,
                                           headers=self._headers()) as response:
                    if response.status == 410:
                        raise IndexExpiredException(repository or path)
                    if response.status == 401:
                        raise AuthenticationException("Invalid Greptile API key.")
                    if response.status == 404:
                        raise RepositoryNotFoundException("greptile", repository or path)
                    if response.status == 429:
                        raise RateLimitException("Greptile rate limit reached", retry_after=60)
                    if response.status >= 400:
                        body = await response.text()
                        raise GreptileServiceException(f"Greptile API error: {response.status} {body[:200]}")
                    data = await response.json(content_type=None)
            success = True
            return data or {}
        finally:
            logger.external_service_call("greptile", f"{method} {path.split('/')[1]}",
                                         (time.time() - start_time) * 1000, success)

    async def index_repository(self, repo_url: str, force_fresh: bool = False) -> str:
        """Submit for indexing and return the repository id"""
        owner, repo = parse_github_url(repo_url)
        full_name = f"{owner}/{repo}"

        if not force_fresh:
            cached = await self.cache.get(CacheLevel.GREPTILE_INDEX, full_name)
            if cached:
                return cached

        await self._request(
            "POST", "/repositories",
            {"remote": "github", "repository": full_name, "branch": "main"},
            repository=full_name
        )
        repo_id = format_repo_id(owner, repo, "main")
        logger.info(f"Repository submitted for indexing: {repo_id}", event_type=EventType.EXTERNAL_SERVICE)

        # A forced re-index may still be settling, so it is not cached
        if not force_fresh:
            await self.cache.set(CacheLevel.GREPTILE_INDEX, full_name, repo_id)
        return repo_id

    async def get_repository_status(self, repo_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/repositories/{quote(repo_id, safe='')}", repository=repo_id)

    async def wait_for_indexing(self, repo_id: str):
        deadline = time.monotonic() + self.index_timeout

        while time.monotonic() < deadline:
            status = await self.get_repository_status(repo_id)
            state = str(status.get("status", "")).lower()
            logger.debug(
                f"Indexing {repo_id}: {status.get('filesProcessed')}/{status.get('numFiles')} files ({state})",
                event_type=EventType.EXTERNAL_SERVICE
            )

            if state == "completed":
                return
            if state == "failed":
                raise GreptileServiceException(f"Repository indexing failed for {repo_id}")

            await asyncio.sleep(self.poll_interval)

        raise IndexingTimeoutException(repo_id, self.index_timeout)

    async def query_for_issues(self, repo_id: str, session_id: str, reindex_attempt: int = 0) -> List[Dict[str, Any]]:
        remote, branch, full_name = parse_repo_id(repo_id)

        if reindex_attempt == 0:
            cached = await self.cache.get(CacheLevel.GREPTILE_QUERY, full_name)
            if cached is not None:
                return cached

        payload = {
            "messages": [{"id": str(uuid.uuid4()), "content": ISSUES_QUERY, "role": "user"}],
            "repositories": [{"remote": remote, "branch": branch, "repository": full_name}],
            "sessionId": session_id,
            "stream": False,
            "genius": True,
        }

        try:
            data = await self._request("POST", "/query", payload, repository=repo_id)
        except IndexExpiredException:
            if reindex_attempt >= self.max_reindex_attempts:
                raise GreptileServiceException(
                    f"Index for {repo_id} expired again after {reindex_attempt + 1} attempts"
                )
            new_repo_id = await self._reindex(full_name, reindex_attempt)
            return await self.query_for_issues(new_repo_id, session_id, reindex_attempt + 1)

        issues = parse_issues(data.get("message", ""))
        await self.cache.set(CacheLevel.GREPTILE_QUERY, full_name, issues)
        return issues

    async def _reindex(self, full_name: str, reindex_attempt: int) -> str:
        logger.warning(
            f"Index for {full_name} expired, re-indexing (attempt {reindex_attempt + 1}/{self.max_reindex_attempts})",
            event_type=EventType.EXTERNAL_SERVICE
        )
        await self.cache.clear_target_cache(full_name)
        new_repo_id = await self.index_repository(f"https://github.com/{full_name}", force_fresh=True)
        await self.wait_for_indexing(new_repo_id)
        # Freshly indexed data takes a while to become queryable
        await asyncio.sleep(self.reindex_delay)
        return new_repo_id

    async def scan(self, repo_url: str) -> List[RawFinding]:
        repo_id = await self.index_repository(repo_url)
        await self.wait_for_indexing(repo_id)

        issues = await self.query_for_issues(repo_id, f"scan-{uuid.uuid4()}")
        findings = [to_raw_finding(issue) for issue in issues]

        logger.info(
            f"Greptile analysis found {len(findings)} issues",
            event_type=EventType.FINDING_DETECTED,
            metadata={"repository": repo_id, "findings": len(findings)}
        )
        return findings

    async def get_metadata(self, repo_url: str) -> RepoMetadata:
        from .github_patterns import detect_languages, detect_frameworks

        owner, repo = parse_github_url(repo_url)
        paths = await self.github_client.get_tree(owner, repo)
        return RepoMetadata(
            languages=detect_languages(paths),
            frameworks=detect_frameworks(paths),
            total_files=len(paths),
            total_lines=0,
        )
