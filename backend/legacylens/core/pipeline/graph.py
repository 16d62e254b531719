"""
LegacyLens scan pipeline - runs plan, hunt, explain and write in order

Phases only return partial updates. This module owns the single write
path: every update is folded into the running state, the new log entries
are appended to the store, and the same entries are published to the
progress channel, in that order.
"""

import time
from typing import List, Optional

from .phases import Phase, PlanPhase, HuntPhase, ExplainPhase, WritePhase
from .state import PipelineState, PipelineUpdate, merge_state
from ..analyzers.base import AnalyzerPort
from ..enrichment.base import EnricherPort
from ..progress.broker import ProgressBroker, log_event, complete_event
from ..records import ScanStatus
from ..scoring import build_scan_stats
from ..storage.base import RecordStore
from ..logging.structured_logger import get_logger, EventType

logger = get_logger(__name__)


class ScanPipeline:
    """
    The fixed four-phase pipeline for one configuration

    One instance can run many scans concurrently; all per-scan data lives
    in the PipelineState passed through ``run``.
    """

    def __init__(
        self,
        store: RecordStore,
        broker: ProgressBroker,
        analyzer: AnalyzerPort,
        enricher: EnricherPort,
        fallback_analyzer: Optional[AnalyzerPort] = None,
        enrichment_batch_size: int = 5,
        enrichment_batch_pause: float = 1.0
    ):
        self.store = store
        self.broker = broker
        self.analyzer = analyzer
        self.enricher = enricher
        self.fallback_analyzer = fallback_analyzer
        self.phases: List[Phase] = [
            PlanPhase(analyzer),
            HuntPhase(analyzer, fallback_analyzer),
            ExplainPhase(enricher, enrichment_batch_size, enrichment_batch_pause),
            WritePhase(),
        ]

    async def run(self, scan_id: str, repo_url: str) -> PipelineState:
        """Run every phase and finalize the record; returns the final state"""
        state = PipelineState(scan_id=scan_id, repo_url=repo_url)
        start_time = time.time()

        logger.info(
            f"Starting scan pipeline for {repo_url}",
            event_type=EventType.PIPELINE_PHASE,
            metadata={"analyzer": self.analyzer.name, "enricher": self.enricher.name}
        )

        for phase in self.phases:
            update = await phase(state)
            state = await self._apply(state, update)

        await self._finalize(state)

        logger.info(
            f"Scan pipeline finished: {'failed' if state.error else 'completed'}",
            event_type=EventType.PIPELINE_PHASE,
            performance_metrics={"duration_ms": (time.time() - start_time) * 1000},
            metadata={"findings": len(state.enriched_findings), "error": state.error}
        )
        return state

    async def _apply(self, state: PipelineState, update: PipelineUpdate) -> PipelineState:
        """Merge one phase update, write it through and publish its logs"""
        if update.is_empty():
            return state

        merged = merge_state(state, update)
        log_dicts = [entry.to_dict() for entry in update.logs]

        if log_dicts:
            await self.store.append_logs(state.scan_id, log_dicts)
        if update.enriched_findings is not None:
            await self.store.update(
                state.scan_id,
                findings=[finding.to_dict() for finding in merged.enriched_findings]
            )

        for log in log_dicts:
            self.broker.publish(state.scan_id, log_event(log))

        return merged

    async def _finalize(self, state: PipelineState):
        findings = [finding.to_dict() for finding in state.enriched_findings]

        if state.error:
            status = ScanStatus.FAILED.value
            record = await self.store.update(state.scan_id, status=status)
            stats = record["stats"]
            findings_count = len(record["findings"])
        else:
            status = ScanStatus.COMPLETED.value
            metadata = state.repo_metadata.to_dict() if state.repo_metadata else None
            stats = build_scan_stats(metadata, findings)
            await self.store.update(state.scan_id, status=status, stats=stats)
            findings_count = len(findings)

        self.broker.publish(state.scan_id, complete_event(status, findings_count, stats))
