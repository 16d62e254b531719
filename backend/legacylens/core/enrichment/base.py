"""
Enricher port: turns a raw finding into explanation, fix and timeline
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict


@dataclass
class Enrichment:
    timeline: Dict[str, str]
    explanation: str
    fix: str


class EnricherPort(ABC):
    """Implementations should degrade to canned content instead of raising"""

    name: str = "enricher"

    @abstractmethod
    async def enrich(self, rule_id: str, file: str, snippet: str) -> Enrichment:
        ...
