"""
Enricher port and its implementations
"""

from .base import Enrichment, EnricherPort
from .fallbacks import FallbackEnricher, fallback_enrichment
from .openai_enricher import OpenAIEnricher


def build_enricher(settings, offline: bool = False) -> EnricherPort:
    if offline or not settings.openai_api_key:
        return FallbackEnricher()
    return OpenAIEnricher(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        temperature=settings.openai_temperature,
        max_tokens=settings.openai_max_tokens,
    )


__all__ = [
    "Enrichment",
    "EnricherPort",
    "FallbackEnricher",
    "OpenAIEnricher",
    "build_enricher",
    "fallback_enrichment",
]
