"""
Tests for the progress broker and its subscriptions
"""

import asyncio

import pytest

from legacylens.core.progress.broker import (
    ProgressBroker, log_event, complete_event, error_event, is_complete
)


def entry(n):
    return log_event({"timestamp": n, "phase": "hunt", "message": f"log {n}"})


class TestProgressBroker:

    def setup_method(self):
        self.broker = ProgressBroker(queue_size=10)

    @pytest.mark.asyncio
    async def test_every_subscriber_receives_every_event(self):
        first = self.broker.subscribe("scan-1")
        second = self.broker.subscribe("scan-1")

        for n in range(3):
            self.broker.publish("scan-1", entry(n))
        self.broker.publish("scan-1", complete_event("completed", 0, {}))

        events_a = [event async for event in first]
        events_b = [event async for event in second]

        assert events_a == events_b
        assert [event["log"]["timestamp"] for event in events_a[:-1]] == [0, 1, 2]
        assert is_complete(events_a[-1])

    @pytest.mark.asyncio
    async def test_subscription_ends_after_terminal_event(self):
        subscription = self.broker.subscribe("scan-1")
        self.broker.publish("scan-1", complete_event("failed", 0, {}))
        self.broker.publish("scan-1", entry(99))

        assert (await subscription.get())["status"] == "failed"
        assert await subscription.get() is None
        assert self.broker.subscriber_count("scan-1") == 0

    @pytest.mark.asyncio
    async def test_events_are_scoped_to_scan(self):
        other = self.broker.subscribe("scan-2")
        self.broker.publish("scan-1", entry(1))

        with pytest.raises(asyncio.TimeoutError):
            await other.get(timeout=0.01)

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        broker = ProgressBroker(queue_size=3)
        subscription = broker.subscribe("scan-1")

        for n in range(5):
            broker.publish("scan-1", entry(n))

        assert subscription.dropped == 2
        received = [(await subscription.get())["log"]["timestamp"] for _ in range(3)]
        assert received == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_slow_subscriber_does_not_affect_others(self):
        broker = ProgressBroker(queue_size=2)
        slow = broker.subscribe("scan-1")
        fast = broker.subscribe("scan-1")

        received = []
        for n in range(4):
            broker.publish("scan-1", entry(n))
            received.append(await fast.get())

        assert [event["log"]["timestamp"] for event in received] == [0, 1, 2, 3]
        assert slow.dropped == 2

    @pytest.mark.asyncio
    async def test_close_wakes_pending_reader(self):
        subscription = self.broker.subscribe("scan-1")
        reader = asyncio.ensure_future(subscription.get())
        await asyncio.sleep(0)

        subscription.close()

        assert await reader is None
        assert self.broker.subscriber_count() == 0

    def test_listener_receives_events_and_errors_are_contained(self):
        seen = []

        def broken(scan_id, event):
            raise RuntimeError("listener bug")

        self.broker.add_listener(broken)
        self.broker.add_listener(lambda scan_id, event: seen.append((scan_id, event["type"])))

        self.broker.publish("scan-1", error_event("Scan not found"))

        assert seen == [("scan-1", "error")]
        self.broker.remove_listener(broken)
        assert len(self.broker.listeners) == 1

    def test_publish_without_subscribers(self):
        self.broker.publish("nobody", entry(1))
        assert self.broker.get_stats() == {
            "subscribers": 0,
            "scans_observed": 0,
            "listeners": 0,
            "published_events": 1,
        }
