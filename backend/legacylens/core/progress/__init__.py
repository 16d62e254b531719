"""Progress channel: live per-scan event fan-out"""

from .broker import ProgressBroker, Subscription, progress_broker

__all__ = ["ProgressBroker", "Subscription", "progress_broker"]
