"""
Scan service: the Submit / Get / Subscribe / Delete surface

Submit validates the URL, writes the initial record and launches the
pipeline as a detached task. Outcomes are only observable through the
record store or the progress channel.
"""

import asyncio
import re
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from .graph import ScanPipeline
from ..analyzers.factory import build_analyzers
from ..enrichment import build_enricher
from ..error_handling.exceptions import (
    InvalidRepositoryUrlException, LegacyLensException, TaskLaunchException
)
from ..progress.broker import ProgressBroker, progress_broker, complete_event, error_event
from ..records import ScanStatus, new_scan_record, now_ms, is_terminal, empty_stats
from ..storage import RecordStore, create_record_store
from ..logging.structured_logger import get_logger, with_scan_context, EventType

logger = get_logger(__name__)

REPO_URL_PATTERN = re.compile(r"^https?://(www\.)?github\.com/[\w-]+/[\w.-]+(/.*)?$")


def validate_repo_url(repo_url: Optional[str]) -> str:
    candidate = (repo_url or "").strip()
    if not REPO_URL_PATTERN.match(candidate):
        raise InvalidRepositoryUrlException(candidate)
    return candidate


class ScanService:

    def __init__(self, store: RecordStore, broker: ProgressBroker, pipeline: ScanPipeline):
        self.store = store
        self.broker = broker
        self.pipeline = pipeline
        self.tasks: Set[asyncio.Task] = set()

    async def submit(self, repo_url: str) -> str:
        """Create the record and start the scan; returns the scan id immediately"""
        repo_url = validate_repo_url(repo_url)
        scan_id = str(uuid.uuid4())

        await self.store.create(new_scan_record(scan_id, repo_url))
        logger.info(
            f"Scan {scan_id} submitted for {repo_url}",
            event_type=EventType.PIPELINE_PHASE,
            metadata={"scan_id": scan_id, "repo_url": repo_url}
        )

        try:
            self._spawn(scan_id, repo_url)
        except Exception as e:
            launch_error = TaskLaunchException(scan_id, cause=e)
            logger.error(launch_error.message, error=e, event_type=EventType.ERROR_OCCURRED)
            await self._mark_failed(scan_id, "plan", f"Failed to start scan: {e}")

        return scan_id

    def _spawn(self, scan_id: str, repo_url: str):
        task = asyncio.get_running_loop().create_task(self._run_detached(scan_id, repo_url))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    @with_scan_context
    async def _run_detached(self, scan_id: str, repo_url: str):
        try:
            await self.pipeline.run(scan_id, repo_url)
        except Exception as e:
            logger.error(f"Fatal error in scan {scan_id}", error=e, event_type=EventType.ERROR_OCCURRED)
            await self._mark_failed(scan_id, "write", f"Fatal error: {e}")

    async def _mark_failed(self, scan_id: str, phase: str, message: str):
        """Best effort: a fatal error must still end in a readable failed record"""
        try:
            await self.store.append_logs(scan_id, [{"timestamp": now_ms(), "phase": phase, "message": message}])
            record = await self.store.update(scan_id, status=ScanStatus.FAILED.value)
        except LegacyLensException as e:
            logger.error(f"Could not mark scan {scan_id} as failed", error=e, event_type=EventType.ERROR_OCCURRED)
            # Observers still need a terminal event when the record is gone
            current = await self.store.get(scan_id)
            if current is None:
                self.broker.publish(scan_id, complete_event(ScanStatus.FAILED.value, 0, empty_stats()))
            elif is_terminal(current["status"]):
                self.broker.publish(
                    scan_id,
                    complete_event(current["status"], len(current["findings"]), current["stats"])
                )
            return

        self.broker.publish(
            scan_id,
            complete_event(ScanStatus.FAILED.value, len(record["findings"]), record["stats"])
        )

    async def get_record(self, scan_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(scan_id)

    async def delete_record(self, scan_id: str) -> bool:
        return await self.store.delete(scan_id)

    async def list_ids(self) -> List[str]:
        return await self.store.list_ids()

    async def stream_progress(self, scan_id: str) -> AsyncIterator[Dict[str, Any]]:
        """
        Progress events for one scan, ending with its terminal event

        The subscription is opened before the record is read, so a scan
        that finishes in between still delivers its terminal event.
        """
        subscription = self.broker.subscribe(scan_id)
        try:
            record = await self.store.get(scan_id)
            if record is None:
                yield error_event("Scan not found")
                return

            if is_terminal(record["status"]):
                yield complete_event(record["status"], len(record["findings"]), record["stats"])
                return

            async for event in subscription:
                yield event
        finally:
            subscription.close()

    async def wait_for_idle(self):
        """Wait until every detached scan task has finished"""
        while self.tasks:
            await asyncio.gather(*list(self.tasks), return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "active_scans": len(self.tasks),
            "analyzer": self.pipeline.analyzer.name,
            "fallback_analyzer": self.pipeline.fallback_analyzer.name if self.pipeline.fallback_analyzer else None,
            "enricher": self.pipeline.enricher.name,
        }


def build_scan_service(
    settings,
    store: Optional[RecordStore] = None,
    broker: Optional[ProgressBroker] = None,
    offline: bool = False
) -> ScanService:
    """Wire store, analyzers, enricher and broker from settings"""
    store = store or create_record_store(settings)
    broker = broker or progress_broker
    analyzer, fallback_analyzer = build_analyzers(settings)
    enricher = build_enricher(settings, offline=offline)

    pipeline = ScanPipeline(
        store,
        broker,
        analyzer,
        enricher,
        fallback_analyzer=fallback_analyzer,
        enrichment_batch_size=settings.enrichment_batch_size,
        enrichment_batch_pause=settings.enrichment_batch_pause_seconds,
    )

    logger.info(
        f"Scan service ready (store={store.backend}, analyzer={analyzer.name}, enricher={enricher.name})",
        event_type=EventType.SYSTEM_EVENT
    )
    return ScanService(store, broker, pipeline)
