"""
OpenAI-backed enrichment: timeline, explanation and fix for one finding
"""

import asyncio
import json
import time
from typing import Any, Dict, Optional

import openai

from .base import Enrichment, EnricherPort
from .fallbacks import fallback_timeline, fallback_explanation, fallback_fix
from ..pipeline.state import make_timeline
from ..resilience.circuit_breaker import circuit_breaker, CircuitBreakerConfig
from ..resilience.rate_limiter import rate_limited, RateLimitConfig
from ..error_handling.error_handler import with_error_handling, RetryConfig
from ..error_handling.exceptions import OpenAIServiceException
from ..logging.structured_logger import get_logger, EventType

logger = get_logger(__name__)

SYSTEM_PROMPT = "You are a senior software engineer analyzing code quality issues."

JSON_RETRY_SUFFIX = "\n\nIMPORTANT: Respond with ONLY valid JSON, no additional text."

MAX_SNIPPET_CHARS = 300

REQUEST_TIMEOUT_SECONDS = 30.0
COMPLETION_RETRY = RetryConfig(max_attempts=3, base_delay_seconds=2.0, max_delay_seconds=10.0)
# Spans every retried attempt plus backoff
COMPLETION_BREAKER = CircuitBreakerConfig(
    failure_threshold=5,
    recovery_timeout=60.0,
    timeout=(REQUEST_TIMEOUT_SECONDS + COMPLETION_RETRY.max_delay_seconds) * COMPLETION_RETRY.max_attempts
)

TIMELINE_KEYS = ("t3m", "t6m", "t1y", "t2y")

TIMELINE_PROMPT = """You are predicting how a code issue will worsen over time.

Issue Type: {rule_id}
File: {file}
Code: {snippet}

Generate 4 short predictions (max 8 words each) from the perspective of future developers discovering this issue:
- 3 months from now
- 6 months from now
- 1 year from now
- 2 years from now

Format as JSON:
{{
  "t3m": "TODO: why is this hardcoded?",
  "t6m": "FIXME: breaks in staging",
  "t1y": "Can't rotate credentials safely",
  "t2y": "Security incident waiting to happen"
}}

Be specific and realistic. Use developer language (TODOs, FIXMEs). Keep each prediction under 8 words."""

EXPLANATION_PROMPT = """Explain this code issue in 2 sentences. Be specific and actionable.

Issue Type: {rule_id}
File: {file}
Code: {snippet}

Format: 2 sentences, ~30 words total. First sentence explains the issue. Second sentence explains the impact.

Respond with JSON: {{"explanation": "your explanation here"}}"""

FIX_PROMPT = """Suggest a minimal code fix for this issue. Show ONLY the fixed code, no explanations.

Issue Type: {rule_id}
Original Code: {snippet}

Respond with JSON: {{"fix": "the fixed code here"}}

Keep it concise (max 5 lines)."""


class OpenAIEnricher(EnricherPort):
    """
    Explanation, fix and future timeline from an OpenAI chat model

    The three prompts for one finding run concurrently. Each one falls back
    to canned content on its own, so a partial outage still produces a
    complete Enrichment and enrich() never raises.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int = 500,
        client: Optional[Any] = None
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client
        if self.client is None and api_key:
            self.client = openai.AsyncOpenAI(api_key=api_key, timeout=REQUEST_TIMEOUT_SECONDS)

    @property
    def available(self) -> bool:
        return self.client is not None

    async def enrich(self, rule_id: str, file: str, snippet: str) -> Enrichment:
        if not self.available:
            return Enrichment(
                timeline=fallback_timeline(rule_id),
                explanation=fallback_explanation(rule_id),
                fix=fallback_fix(rule_id),
            )

        snippet = (snippet or "")[:MAX_SNIPPET_CHARS]
        timeline, explanation, fix = await asyncio.gather(
            self.generate_timeline(rule_id, file, snippet),
            self.generate_explanation(rule_id, file, snippet),
            self.generate_fix(rule_id, snippet),
        )
        return Enrichment(timeline=timeline, explanation=explanation, fix=fix)

    async def generate_timeline(self, rule_id: str, file: str, snippet: str) -> Dict[str, str]:
        try:
            response = await self.call_json(TIMELINE_PROMPT.format(rule_id=rule_id, file=file, snippet=snippet))
        except Exception as e:
            logger.warning(f"Timeline generation failed for {rule_id}, using fallback", error=e,
                           event_type=EventType.EXTERNAL_SERVICE)
            return fallback_timeline(rule_id)

        values = [response.get(key) for key in TIMELINE_KEYS] if isinstance(response, dict) else []
        if len(values) != len(TIMELINE_KEYS) or not all(isinstance(value, str) and value for value in values):
            logger.warning(f"Incomplete timeline for {rule_id}, using fallback", event_type=EventType.EXTERNAL_SERVICE)
            return fallback_timeline(rule_id)
        return make_timeline(values)

    async def generate_explanation(self, rule_id: str, file: str, snippet: str) -> str:
        try:
            response = await self.call_json(EXPLANATION_PROMPT.format(rule_id=rule_id, file=file, snippet=snippet))
        except Exception as e:
            logger.warning(f"Explanation generation failed for {rule_id}, using fallback", error=e,
                           event_type=EventType.EXTERNAL_SERVICE)
            return fallback_explanation(rule_id)

        explanation = response.get("explanation") if isinstance(response, dict) else None
        return explanation if isinstance(explanation, str) and explanation else fallback_explanation(rule_id)

    async def generate_fix(self, rule_id: str, snippet: str) -> str:
        try:
            response = await self.call_json(FIX_PROMPT.format(rule_id=rule_id, snippet=snippet))
        except Exception as e:
            logger.warning(f"Fix generation failed for {rule_id}, using fallback", error=e,
                           event_type=EventType.EXTERNAL_SERVICE)
            return fallback_fix(rule_id)

        fix = response.get("fix") if isinstance(response, dict) else None
        return fix if isinstance(fix, str) and fix else fallback_fix(rule_id)

    async def call_json(self, prompt: str) -> Any:
        """Ask for JSON; retry once with a stricter instruction if the answer does not parse"""
        content = await self._call_openai(prompt)
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            logger.debug("Model answer was not valid JSON, retrying", event_type=EventType.EXTERNAL_SERVICE)

        content = await self._call_openai(prompt + JSON_RETRY_SUFFIX)
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise OpenAIServiceException("Model answer was not valid JSON", cause=e) from e

    @circuit_breaker("openai_service", COMPLETION_BREAKER)
    @rate_limited("openai_api", RateLimitConfig(max_requests=300, time_window_seconds=60))
    @with_error_handling(COMPLETION_RETRY, handler_name="openai_enricher")
    async def _call_openai(self, prompt: str) -> str:
        start_time = time.time()

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        logger.debug(
            "OpenAI completion received",
            event_type=EventType.EXTERNAL_SERVICE,
            performance_metrics={
                "response_time_ms": (time.time() - start_time) * 1000,
                "tokens_used": response.usage.total_tokens if response.usage else 0
            },
            metadata={"model": self.model}
        )

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
