"""
Tests for the OpenAI and fallback enrichers
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from legacylens.config import Settings
from legacylens.core.enrichment import FallbackEnricher, OpenAIEnricher, build_enricher
from legacylens.core.enrichment.fallbacks import (
    fallback_timeline, fallback_explanation, fallback_fix, DEFAULT_EXPLANATION, DEFAULT_FIX
)
from legacylens.core.enrichment.openai_enricher import JSON_RETRY_SUFFIX
from legacylens.core.error_handling.exceptions import OpenAIServiceException

SNIPPET = 'const API_KEY = "sk_live_abcdefghijklmnop";'

TIMELINE_ANSWER = {"t3m": "TODO: rotate?", "t6m": "FIXME: leaked", "t1y": "Audit fails", "t2y": "Breach"}


def completion(content):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=42),
    )


def fake_client(answers):
    """Client whose answer depends on which prompt it is given"""
    prompts = []

    async def create(**kwargs):
        prompt = kwargs["messages"][-1]["content"]
        prompts.append(prompt)
        for marker, answer in answers.items():
            if marker in prompt:
                if isinstance(answer, Exception):
                    raise answer
                return completion(answer(prompt) if callable(answer) else answer)
        raise AssertionError(f"unexpected prompt: {prompt[:40]}")

    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=create)
    client.prompts = prompts
    return client


GOOD_ANSWERS = {
    "predicting how": json.dumps(TIMELINE_ANSWER),
    "Explain this code issue": json.dumps({"explanation": "Secrets live in code. Rotation is impossible."}),
    "minimal code fix": json.dumps({"fix": "const API_KEY = process.env.API_KEY;"}),
}


class TestFallbacks:

    def test_known_rule(self):
        timeline = fallback_timeline("hardcoded-secrets")
        assert timeline["3 months"] == "TODO: why hardcoded?"
        assert list(timeline.keys()) == ["3 months", "6 months", "1 year", "2 years"]
        assert "environment variables" in fallback_explanation("hardcoded-secrets")
        assert fallback_fix("hardcoded-secrets").startswith("const API_KEY = process.env.API_KEY;")

    def test_unknown_rule(self):
        assert fallback_timeline("brand-new-rule")["2 years"] == "Technical debt grows"
        assert fallback_explanation("brand-new-rule") == DEFAULT_EXPLANATION
        assert fallback_fix("brand-new-rule") == DEFAULT_FIX

    @pytest.mark.asyncio
    async def test_fallback_enricher(self):
        enrichment = await FallbackEnricher().enrich("empty-catch", "a.js", "catch (e) {}")
        assert enrichment.explanation == fallback_explanation("empty-catch")
        assert enrichment.fix == fallback_fix("empty-catch")


class TestOpenAIEnricher:

    @pytest.mark.asyncio
    async def test_full_enrichment(self):
        client = fake_client(GOOD_ANSWERS)
        enricher = OpenAIEnricher(client=client, model="test-model")

        enrichment = await enricher.enrich("hardcoded-secrets", "src/app.js", SNIPPET)

        assert enrichment.timeline == {
            "3 months": "TODO: rotate?", "6 months": "FIXME: leaked", "1 year": "Audit fails", "2 years": "Breach",
        }
        assert enrichment.explanation == "Secrets live in code. Rotation is impossible."
        assert enrichment.fix == "const API_KEY = process.env.API_KEY;"
        assert client.chat.completions.create.await_count == 3
        assert client.chat.completions.create.await_args.kwargs["model"] == "test-model"

    @pytest.mark.asyncio
    async def test_snippet_is_truncated_in_prompts(self):
        client = fake_client(GOOD_ANSWERS)

        await OpenAIEnricher(client=client).enrich("long-function", "a.js", "y" * 1000)

        assert all("y" * 301 not in prompt for prompt in client.prompts)
        assert any("y" * 300 in prompt for prompt in client.prompts)

    @pytest.mark.asyncio
    async def test_invalid_json_is_retried_with_stricter_prompt(self):
        answers = dict(GOOD_ANSWERS)
        answers["Explain this code issue"] = lambda prompt: (
            json.dumps({"explanation": "Recovered. After retry."}) if JSON_RETRY_SUFFIX in prompt
            else "Sure! Here is the explanation you asked for."
        )
        client = fake_client(answers)

        enrichment = await OpenAIEnricher(client=client).enrich("hardcoded-secrets", "a.js", SNIPPET)

        assert enrichment.explanation == "Recovered. After retry."
        assert client.chat.completions.create.await_count == 4

    @pytest.mark.asyncio
    async def test_unparseable_answer_falls_back(self):
        answers = dict(GOOD_ANSWERS)
        answers["minimal code fix"] = "not json at all"
        client = fake_client(answers)

        enrichment = await OpenAIEnricher(client=client).enrich("hardcoded-secrets", "a.js", SNIPPET)

        assert enrichment.fix == fallback_fix("hardcoded-secrets")
        assert enrichment.explanation == "Secrets live in code. Rotation is impossible."

    @pytest.mark.asyncio
    async def test_unparseable_answer_raises_service_error(self):
        client = fake_client({"minimal code fix": "not json at all"})

        with pytest.raises(OpenAIServiceException) as exc_info:
            await OpenAIEnricher(client=client).call_json("Suggest a minimal code fix")

        assert isinstance(exc_info.value.cause, json.JSONDecodeError)
        assert exc_info.value.service_name == "openai"
        assert client.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_incomplete_timeline_falls_back(self):
        answers = dict(GOOD_ANSWERS)
        answers["predicting how"] = json.dumps({"t3m": "only one"})

        enrichment = await OpenAIEnricher(client=fake_client(answers)).enrich("sql-injection", "a.js", "q")

        assert enrichment.timeline == fallback_timeline("sql-injection")

    @pytest.mark.asyncio
    async def test_service_errors_fall_back_per_field(self):
        answers = dict(GOOD_ANSWERS)
        answers["predicting how"] = RuntimeError("upstream service unavailable")

        with patch("legacylens.core.error_handling.error_handler.asyncio.sleep", new=AsyncMock()):
            enrichment = await OpenAIEnricher(client=fake_client(answers)).enrich(
                "hardcoded-secrets", "a.js", SNIPPET
            )

        assert enrichment.timeline == fallback_timeline("hardcoded-secrets")
        assert enrichment.explanation == "Secrets live in code. Rotation is impossible."

    @pytest.mark.asyncio
    async def test_without_client_uses_fallbacks(self):
        enricher = OpenAIEnricher(api_key="")

        enrichment = await enricher.enrich("eval-usage", "a.js", "eval(x)")

        assert not enricher.available
        assert enrichment.explanation == fallback_explanation("eval-usage")


class TestBuildEnricher:

    def test_offline_or_keyless(self):
        assert isinstance(build_enricher(Settings(openai_api_key="sk-test"), offline=True), FallbackEnricher)
        assert isinstance(build_enricher(Settings(openai_api_key="")), FallbackEnricher)

    def test_with_key(self):
        enricher = build_enricher(Settings(openai_api_key="sk-test", openai_model="gpt-test"))
        assert isinstance(enricher, OpenAIEnricher)
        assert enricher.model == "gpt-test"
        assert enricher.available
