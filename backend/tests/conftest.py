import os

import pytest

from legacylens.core.cache.cache_manager import cache_manager
from legacylens.core.resilience.circuit_breaker import circuit_breaker_manager
from legacylens.core.resilience.rate_limiter import rate_limiter_manager
from legacylens.core.storage.json_store import JsonFileRecordStore


@pytest.fixture
def store(tmp_path):
    return JsonFileRecordStore(os.path.join(tmp_path, "scans.json"))


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Breakers, limiters and the local cache are process-wide"""
    circuit_breaker_manager.breakers.clear()
    rate_limiter_manager.limiters.clear()
    cache_manager.local_cache.clear()
    yield
    circuit_breaker_manager.breakers.clear()
    rate_limiter_manager.limiters.clear()
    cache_manager.local_cache.clear()
