"""
Minimal GitHub REST client: repository tree and raw file contents
"""

import asyncio
import re
import time
from typing import Dict, List, Optional, Tuple

import aiohttp

from ..cache.cache_manager import cache_manager, CacheManager, CacheLevel
from ..error_handling.exceptions import (
    AuthenticationException, GitHubServiceException, RateLimitException,
    RepositoryNotFoundException, ValidationException
)
from ..error_handling.error_handler import with_error_handling, RetryConfig
from ..resilience.circuit_breaker import circuit_breaker, CircuitBreakerConfig
from ..logging.structured_logger import get_logger

logger = get_logger(__name__)

GITHUB_URL_PATTERN = re.compile(r"github\.com/([\w.-]+)/([\w.-]+?)(?:\.git)?(?:[/?#]|$)")

TREE_BRANCHES = ("main", "master")

REQUEST_TIMEOUT_SECONDS = 30.0
TREE_RETRY = RetryConfig(max_attempts=2, base_delay_seconds=1.0, max_delay_seconds=10.0)
# Spans every retried attempt plus backoff
TREE_BREAKER = CircuitBreakerConfig(
    failure_threshold=5,
    recovery_timeout=30.0,
    timeout=(REQUEST_TIMEOUT_SECONDS + TREE_RETRY.max_delay_seconds) * TREE_RETRY.max_attempts
)


def parse_github_url(repo_url: str) -> Tuple[str, str]:
    """Return (owner, repo) for a GitHub repository URL"""
    match = GITHUB_URL_PATTERN.search(repo_url.strip())
    if not match:
        raise ValidationException(f"Not a GitHub repository URL: {repo_url}")
    return match.group(1), match.group(2)


class GitHubClient:

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        token: str = "",
        cache: Optional[CacheManager] = None,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS
    ):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.cache = cache or cache_manager
        self.timeout = aiohttp.ClientTimeout(total=request_timeout)

    def _headers(self, accept: str = "application/vnd.github.v3+json") -> Dict[str, str]:
        headers = {"Accept": accept, "User-Agent": "legacylens"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def get_tree(self, owner: str, repo: str) -> List[str]:
        """Paths of every blob in the default branch (main, then master)"""
        full_name = f"{owner}/{repo}"
        cached = await self.cache.get(CacheLevel.REPO_TREE, full_name)
        if cached is not None:
            return cached

        paths = None
        for branch in TREE_BRANCHES:
            try:
                paths = await self._fetch_tree(owner, repo, branch)
                break
            except RepositoryNotFoundException:
                logger.debug(f"No tree for {full_name} on branch {branch}")

        if paths is None:
            raise RepositoryNotFoundException("github", full_name)

        await self.cache.set(CacheLevel.REPO_TREE, full_name, paths)
        return paths

    @circuit_breaker("github_api", TREE_BREAKER)
    @with_error_handling(TREE_RETRY, handler_name="github_api")
    async def _fetch_tree(self, owner: str, repo: str, branch: str) -> List[str]:
        url = f"{self.api_url}/repos/{owner}/{repo}/git/trees/{branch}?recursive=1"
        start_time = time.time()
        success = False

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url, headers=self._headers()) as response:
                    self._raise_for_status(response.status, f"{owner}/{repo}", response.headers)
                    data = await response.json()
            success = True
        finally:
            logger.external_service_call("github", "get_tree", (time.time() - start_time) * 1000, success,
                                         metadata={"repository": f"{owner}/{repo}", "branch": branch})

        return [item["path"] for item in data.get("tree", []) if item.get("type") == "blob"]

    async def get_file_contents(self, owner: str, repo: str, paths: List[str]) -> Dict[str, str]:
        """Raw contents for several files; a file that cannot be fetched maps to ''"""
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            contents = await asyncio.gather(*(self._fetch_file(session, owner, repo, path) for path in paths))
        return dict(zip(paths, contents))

    async def _fetch_file(self, session: aiohttp.ClientSession, owner: str, repo: str, path: str) -> str:
        url = f"{self.api_url}/repos/{owner}/{repo}/contents/{path}"
        try:
            async with session.get(url, headers=self._headers("application/vnd.github.v3.raw")) as response:
                if response.status != 200:
                    return ""
                return await response.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"Could not fetch {owner}/{repo}/{path}: {e}")
            return ""

    def _raise_for_status(self, status: int, repository: str, headers) -> None:
        if 200 <= status < 300:
            return
        if status in (401, 403):
            if status == 403 and headers.get("X-RateLimit-Remaining") == "0":
                raise RateLimitException("GitHub API rate limit exceeded", retry_after=60)
            raise AuthenticationException("GitHub rejected the request credentials")
        if status == 404:
            raise RepositoryNotFoundException("github", repository)
        if status == 429:
            raise RateLimitException("GitHub API rate limit exceeded", retry_after=60)
        raise GitHubServiceException(f"GitHub API error: {status}")
