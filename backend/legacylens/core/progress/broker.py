"""
In-process fan-out of scan progress events

Each subscriber owns a bounded queue. Publishing never blocks: when a
subscriber's queue is full its oldest event is dropped, so one stalled
observer cannot slow the pipeline or other observers.
"""

import asyncio
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set

from ...config import settings
from ..logging.structured_logger import get_logger, EventType

logger = get_logger(__name__)

COMPLETE_EVENT = "complete"

Listener = Callable[[str, Dict[str, Any]], None]


def log_event(log: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "log", "log": log}


def complete_event(status: str, findings_count: int, stats: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": COMPLETE_EVENT, "status": status, "findingsCount": findings_count, "stats": stats}


def error_event(message: str) -> Dict[str, Any]:
    return {"type": "error", "message": message}


def is_complete(event: Dict[str, Any]) -> bool:
    return event.get("type") == COMPLETE_EVENT


class Subscription:
    """Async iterator over one scan's events; ends after the terminal event"""

    _CLOSED = object()

    def __init__(self, broker: "ProgressBroker", scan_id: str, queue_size: int):
        self.broker = broker
        self.scan_id = scan_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0
        self.closed = False
        self.finished = False

    def offer(self, event: Dict[str, Any]):
        if self.closed:
            return
        while True:
            try:
                self.queue.put_nowait(event)
                return
            except asyncio.QueueFull:
                try:
                    self.queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass

    async def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Next event, or None once the subscription is finished or closed"""
        if self.finished or (self.closed and self.queue.empty()):
            return None

        if timeout is None:
            event = await self.queue.get()
        else:
            event = await asyncio.wait_for(self.queue.get(), timeout)

        if event is self._CLOSED:
            return None
        if is_complete(event):
            self.finished = True
            self.close()
        return event

    def __aiter__(self):
        return self

    async def __anext__(self) -> Dict[str, Any]:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.broker.unsubscribe(self)
        try:
            self.queue.put_nowait(self._CLOSED)
        except asyncio.QueueFull:
            pass


class ProgressBroker:
    """Publishes per-scan events to subscribers and registered listeners"""

    def __init__(self, queue_size: int = 1000):
        self.queue_size = max(1, queue_size)
        self.subscriptions: Dict[str, Set[Subscription]] = defaultdict(set)
        self.listeners: List[Listener] = []
        self.published_events = 0

    def subscribe(self, scan_id: str) -> Subscription:
        subscription = Subscription(self, scan_id, self.queue_size)
        self.subscriptions[scan_id].add(subscription)
        logger.debug(f"New progress subscriber for scan {scan_id}", event_type=EventType.PROGRESS)
        return subscription

    def unsubscribe(self, subscription: Subscription):
        subscribers = self.subscriptions.get(subscription.scan_id)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self.subscriptions[subscription.scan_id]

    def add_listener(self, listener: Listener):
        self.listeners.append(listener)

    def remove_listener(self, listener: Listener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    def publish(self, scan_id: str, event: Dict[str, Any]):
        self.published_events += 1

        for subscription in list(self.subscriptions.get(scan_id, ())):
            subscription.offer(event)

        for listener in list(self.listeners):
            try:
                listener(scan_id, event)
            except Exception as e:
                logger.warning(f"Progress listener failed for scan {scan_id}", error=e,
                               event_type=EventType.PROGRESS)

    def subscriber_count(self, scan_id: Optional[str] = None) -> int:
        if scan_id is not None:
            return len(self.subscriptions.get(scan_id, ()))
        return sum(len(subscribers) for subscribers in self.subscriptions.values())

    def get_stats(self) -> Dict[str, Any]:
        return {
            "subscribers": self.subscriber_count(),
            "scans_observed": len(self.subscriptions),
            "listeners": len(self.listeners),
            "published_events": self.published_events,
        }


# Global progress broker
progress_broker = ProgressBroker(settings.progress_queue_size)
